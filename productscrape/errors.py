"""Error taxonomy for the scraping pipeline.

Every failure the pipeline surfaces is a ``ScrapeError`` carrying a closed
``ErrorKind``. Callers pick behaviour and HTTP status from the kind, never
from the message text.
"""

from enum import Enum
from typing import Any, Dict, Optional

__all__ = [
    "ErrorKind",
    "STATUS_CODES",
    "DEFAULT_MESSAGES",
    "ScrapeError",
    "InvalidInputError",
    "FetchError",
    "ExtractionError",
    "NoItemsFoundError",
]


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    BOT_CHALLENGE = "bot_challenge"
    UPSTREAM_SERVER_ERROR = "upstream_server_error"
    EXTRACTION_FAILURE = "extraction_failure"
    PARTIAL_LIST_FAILURE = "partial_list_failure"
    UNCLASSIFIED = "unclassified"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.TIMEOUT: 408,
    ErrorKind.EXTRACTION_FAILURE: 422,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.NETWORK_ERROR: 502,
    ErrorKind.UPSTREAM_SERVER_ERROR: 503,
    ErrorKind.BOT_CHALLENGE: 503,
    ErrorKind.PARTIAL_LIST_FAILURE: 200,
    ErrorKind.UNCLASSIFIED: 500,
}

DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: "Please provide a valid product, search, category or store URL.",
    ErrorKind.NETWORK_ERROR: (
        "Network connection error. Please check your internet connection and try again."
    ),
    ErrorKind.TIMEOUT: (
        "Page loading timeout. The site may be experiencing issues or blocking requests."
    ),
    ErrorKind.RATE_LIMITED: "The site is rate limiting requests. Please wait a moment and try again.",
    ErrorKind.BOT_CHALLENGE: "The site served an anti-automation challenge instead of the page.",
    ErrorKind.UPSTREAM_SERVER_ERROR: (
        "The site returned an error response. The product may not exist or be "
        "temporarily unavailable."
    ),
    ErrorKind.EXTRACTION_FAILURE: "No product data could be extracted from the page.",
    ErrorKind.PARTIAL_LIST_FAILURE: "Some items in the listing could not be scraped.",
    ErrorKind.UNCLASSIFIED: "An unexpected error occurred while scraping.",
}


class ScrapeError(Exception):
    """Base class for every error the pipeline surfaces.

    Args:
        kind: Machine-readable error kind.
        message: Human-readable message; defaults to the kind's stock message.
        **context: Structured details (url, status code, attempts, ...).
    """

    default_kind = ErrorKind.UNCLASSIFIED

    def __init__(
        self,
        message: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
        **context: Any,
    ) -> None:
        self.kind = kind or self.default_kind
        self.message = message or DEFAULT_MESSAGES[self.kind]
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        """JSON error body: ``{error, message, statusCode}``."""
        return {
            "error": self.kind.value,
            "message": self.message,
            "statusCode": self.status_code,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class InvalidInputError(ScrapeError):
    """Raised for URLs that fail validation; never retried."""

    default_kind = ErrorKind.INVALID_INPUT


class FetchError(ScrapeError):
    """Raised by the fetcher once a fatal outcome is hit or a budget runs out.

    The kind is the terminal reason (network, timeout, rate limit, upstream).
    """

    default_kind = ErrorKind.NETWORK_ERROR


class ExtractionError(ScrapeError):
    """Raised when a page yields no usable product signal."""

    default_kind = ErrorKind.EXTRACTION_FAILURE


class NoItemsFoundError(ExtractionError):
    """Raised when no candidate item link survives any discovery tier."""
