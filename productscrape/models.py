"""Data models for URLs, fetch attempts, products and listing results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from productscrape.config import NOT_AVAILABLE

__all__ = [
    "NOT_AVAILABLE",
    "PageClass",
    "URLDescriptor",
    "FetchOutcome",
    "FetchAttempt",
    "Document",
    "ProductRecord",
    "Provenance",
    "ListResult",
]


class PageClass(str, Enum):
    PRODUCT = "product"
    SEARCH = "search"
    CATEGORY = "category"
    STORE = "store"
    UNKNOWN = "unknown"

    @property
    def is_listing(self) -> bool:
        return self in (PageClass.SEARCH, PageClass.CATEGORY, PageClass.STORE)


@dataclass(frozen=True)
class URLDescriptor:
    """A caller-supplied URL, its canonical form and the page class it maps to."""

    raw: str
    normalized: str
    page_class: PageClass


class FetchOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class FetchAttempt:
    """One pass through the fetcher loop."""

    attempt_number: int
    delay_before_ms: int
    outcome: FetchOutcome
    url: str
    reason: Optional[str] = None
    status_code: Optional[int] = None


@dataclass(frozen=True)
class Document:
    """A fetched, decompressed and decoded page."""

    url: str
    html: str
    status_code: int = 200
    bot_challenge: bool = False
    attempts: Tuple[FetchAttempt, ...] = ()


@dataclass(frozen=True)
class ProductRecord:
    """Represents a single product extracted from a page or listing.

    Every field except ``url`` and ``error`` holds either a value or the
    ``NOT_AVAILABLE`` sentinel. ``error`` is set only on records that stand
    in for an item that could not be scraped.
    """

    url: str
    title: str = NOT_AVAILABLE
    price: str = NOT_AVAILABLE
    item_id: str = NOT_AVAILABLE
    rating: str = NOT_AVAILABLE
    review_count: str = NOT_AVAILABLE
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def has_signal(self) -> bool:
        """True when at least one of title, price or rating was resolved."""
        return any(
            value != NOT_AVAILABLE for value in (self.title, self.price, self.rating)
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "price": self.price,
            "itemId": self.item_id,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "url": self.url,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class Provenance(str, Enum):
    DETAIL_FETCH = "fromDetailFetch"
    LIST_SUMMARY = "fromListSummary"


@dataclass(frozen=True)
class ListResult:
    """Aggregate of a listing expansion, in candidate order."""

    source_url: str
    page_class: PageClass
    items: Tuple[ProductRecord, ...] = ()
    provenance: Tuple[Provenance, ...] = field(default=())

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def error_count(self) -> int:
        return sum(1 for item in self.items if item.is_error)

    @property
    def success_ratio(self) -> float:
        if not self.items:
            return 0.0
        return (len(self.items) - self.error_count) / len(self.items)

    @property
    def is_partial(self) -> bool:
        return 0 < self.error_count < len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceUrl": self.source_url,
            "pageClass": self.page_class.value,
            "items": [
                dict(item.to_dict(), provenance=source.value)
                for item, source in zip(self.items, self.provenance)
            ],
            "successRatio": self.success_ratio,
        }
