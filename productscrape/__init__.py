"""Product page scraper package."""

from productscrape.config import VERSION as __version__

# Re-export main components for convenient imports
from productscrape.config import NOT_AVAILABLE, RetryPolicy, ScraperConfig
from productscrape.errors import (
    ErrorKind,
    ExtractionError,
    FetchError,
    InvalidInputError,
    NoItemsFoundError,
    ScrapeError,
)
from productscrape.extractor import FieldExtractor
from productscrape.fetcher import Fetcher
from productscrape.list_expander import ListExpander
from productscrape.models import (
    Document,
    ListResult,
    PageClass,
    ProductRecord,
    Provenance,
    URLDescriptor,
)
from productscrape.scraper import Scraper, scrape_url
from productscrape.url_utils import classify

__all__ = [
    # Version
    "__version__",
    # Config
    "NOT_AVAILABLE",
    "RetryPolicy",
    "ScraperConfig",
    # Errors
    "ErrorKind",
    "ScrapeError",
    "InvalidInputError",
    "FetchError",
    "ExtractionError",
    "NoItemsFoundError",
    # Models
    "Document",
    "ListResult",
    "PageClass",
    "ProductRecord",
    "Provenance",
    "URLDescriptor",
    # Pipeline
    "classify",
    "Fetcher",
    "FieldExtractor",
    "ListExpander",
    "Scraper",
    "scrape_url",
]
