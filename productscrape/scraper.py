"""Core scraping logic: one URL in, one record or a list of records out."""

import random
import time
from typing import Callable, Optional, Union

import requests  # type: ignore[import-untyped]

from productscrape.config import ScraperConfig
from productscrape.errors import ErrorKind, NoItemsFoundError, ScrapeError
from productscrape.extractor import FieldExtractor
from productscrape.fetcher import Fetcher, create_session
from productscrape.list_expander import ListExpander
from productscrape.logging_config import get_logger, log_scrape_event
from productscrape.models import ListResult, PageClass, ProductRecord
from productscrape.url_utils import classify, validate_url

__all__ = ["Scraper", "ScrapeResult", "scrape_url"]

logger = get_logger("scraper")

ScrapeResult = Union[ProductRecord, ListResult]

# Process-wide random source for User-Agent rotation, jitter and item pauses
_rng = random.Random()


class Scraper:
    """Composes classifier, fetcher, extractor and list expander per request.

    Nothing is shared between ``handle`` calls except this read-only
    configuration: every call gets its own session and fetcher.

    Args:
        config: Pipeline configuration (default: ``ScraperConfig()``).
        session_factory: Builds a fresh requests Session for each request.
        sleep: Blocking sleep function; injectable for tests.
        rng: Random source; defaults to the process-wide one.
    """

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        session_factory: Callable[[ScraperConfig], requests.Session] = create_session,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or ScraperConfig()
        self.session_factory = session_factory
        self._sleep = sleep
        self._rng = rng or _rng
        self.extractor = FieldExtractor(self.config)

    def handle(self, raw_url: str) -> ScrapeResult:
        """Scrape a product, search, category or store URL.

        Returns:
            ProductRecord for single items, ListResult for listing pages

        Raises:
            ScrapeError: Typed error for anything that could not be recovered
        """
        url = validate_url(raw_url, self.config.allowed_domains)
        descriptor = classify(url)
        logger.info(f"Starting scrape session for: {descriptor.normalized} ({descriptor.page_class.value})")
        log_scrape_event("scrape_start", {
            "url": descriptor.raw,
            "normalized": descriptor.normalized,
            "page_class": descriptor.page_class.value,
        }, logger_name="scraper")

        session = self.session_factory(self.config)
        try:
            fetcher = Fetcher(self.config, session=session, sleep=self._sleep, rng=self._rng)
            if descriptor.page_class.is_listing:
                result: ScrapeResult = self._handle_listing(fetcher, descriptor.normalized, descriptor.page_class)
            else:
                # Unknown shapes on a valid URL are attempted as single items
                document = fetcher.fetch(descriptor.normalized)
                result = self.extractor.extract(document, descriptor.normalized)
        except ScrapeError as e:
            logger.error(f"Scraping error ({e.kind.value}): {e.message}")
            log_scrape_event("scrape_failed", {
                "url": descriptor.normalized,
                "kind": e.kind.value,
                "error": e.message,
            }, logger_name="scraper")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error scraping {descriptor.normalized}")
            raise ScrapeError(
                kind=ErrorKind.UNCLASSIFIED, url=descriptor.normalized, detail=str(e)
            ) from e
        finally:
            session.close()

        self._log_complete(descriptor.normalized, result)
        return result

    def _handle_listing(self, fetcher: Fetcher, url: str, page_class: PageClass) -> ScrapeResult:
        document = fetcher.fetch(url)
        expander = ListExpander(
            fetcher, self.extractor, self.config, sleep=self._sleep, rng=self._rng
        )
        try:
            return expander.expand(document, page_class, url)
        except NoItemsFoundError:
            if page_class is not PageClass.STORE or not self.config.store_single_item_fallback:
                raise
            # Store pages occasionally resolve to a single hero product
            logger.info(f"No items on store page, treating it as a single product: {url}")
            return self.extractor.extract(document, document.url or url)

    @staticmethod
    def _log_complete(url: str, result: ScrapeResult) -> None:
        if isinstance(result, ListResult):
            logger.info(
                f"Scraping completed: {len(result)} items, "
                f"{result.error_count} failed (success ratio {result.success_ratio:.2f})"
            )
            log_scrape_event("scrape_complete", {
                "url": url,
                "is_list": True,
                "count": len(result),
                "failed": result.error_count,
                "success_ratio": result.success_ratio,
            }, logger_name="scraper")
        else:
            logger.info(f"Scraping completed successfully: {result.item_id}")
            log_scrape_event("scrape_complete", {
                "url": url,
                "is_list": False,
                "count": 1,
                "item_id": result.item_id,
            }, logger_name="scraper")


def scrape_url(url: str, config: Optional[ScraperConfig] = None) -> ScrapeResult:
    """Scrape one URL with a default ``Scraper``."""
    return Scraper(config).handle(url)
