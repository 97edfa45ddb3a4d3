"""Configuration and constants for the scraper.

Module-level constants are the defaults. Components never read them
directly; they receive an immutable ``ScraperConfig`` built from them, so
tests can override any value with ``dataclasses.replace``.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

__all__ = [
    "SERVICE_NAME",
    "VERSION",
    "NOT_AVAILABLE",
    "HEADERS",
    "USER_AGENTS",
    "REQUEST_TIMEOUT",
    "REQUEST_DEADLINE",
    "MAX_RETRIES",
    "RETRY_BASE_DELAY",
    "RATE_LIMIT_MAX_RETRIES",
    "RATE_LIMIT_BASE_DELAY",
    "RATE_LIMIT_MULTIPLIER",
    "RATE_LIMIT_MAX_DELAY",
    "RESPECT_RETRY_AFTER",
    "MAX_REDIRECTS",
    "MIN_RESPONSE_BYTES",
    "MAX_LIST_ITEMS",
    "MAX_BATCH_URLS",
    "INTER_ITEM_DELAY_MIN",
    "INTER_ITEM_DELAY_MAX",
    "CURRENCY_SYMBOL",
    "BOT_CHALLENGE_SIGNATURES",
    "BRANDING_MARKERS",
    "CONTAINER_SELECTORS",
    "LINK_SELECTORS",
    "DIRECT_LINK_SELECTORS",
    "EXCLUDED_LINK_PATTERNS",
    "RetryPolicy",
    "ScraperConfig",
]

SERVICE_NAME = "Product Scraper"
VERSION = "2.1.0"

# Placeholder for any field no extraction rule could resolve
NOT_AVAILABLE = "N/A"

# Browser-like headers; the User-Agent is rotated per attempt
HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Upgrade-Insecure-Requests": "1",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

USER_AGENTS: Tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
)

# Per-attempt timeout (seconds)
REQUEST_TIMEOUT = 8.0

# Overall budget the caller gives a single-page fetch (seconds).
# worst_case_fetch_seconds() of the default config must stay below this.
REQUEST_DEADLINE = 120.0

# Transient failures (connection errors, timeouts, 5xx, undersized bodies)
MAX_RETRIES = 2
RETRY_BASE_DELAY = 1.0

# HTTP 429 gets its own budget and an exponential curve
RATE_LIMIT_MAX_RETRIES = 3
RATE_LIMIT_BASE_DELAY = 0.5
RATE_LIMIT_MULTIPLIER = 2.0
RATE_LIMIT_MAX_DELAY = 5.0
RESPECT_RETRY_AFTER = True

MAX_REDIRECTS = 3

# Bodies smaller than this are treated as soft blocks
MIN_RESPONSE_BYTES = 1000

# List expansion
MAX_LIST_ITEMS = 10
MAX_BATCH_URLS = 15
INTER_ITEM_DELAY_MIN = 1.0
INTER_ITEM_DELAY_MAX = 2.5

CURRENCY_SYMBOL = "$"

BOT_CHALLENGE_SIGNATURES: Tuple[str, ...] = (
    "enter the characters you see below",
    "sorry, we just need to make sure you're not a robot",
    "/errors/validatecaptcha",
    "type the characters you see in this image",
    "to discuss automated access to amazon data",
    "api-services-support@amazon.com",
)

# A title containing any of these is page chrome, not a product name
BRANDING_MARKERS: Tuple[str, ...] = (
    "amazon.com",
    "amazon.co.uk",
    "robot check",
    "page not found",
    "sorry! something went wrong",
)


# =============================================================================
# Listing Selector Tables
# =============================================================================
# Keys are PageClass values. Each chain is tried in order; the first selector
# that matches at least one element wins.

CONTAINER_SELECTORS: Dict[str, Tuple[str, ...]] = {
    "search": (
        'div[data-component-type="s-search-result"]',
        "div.s-result-item[data-asin]",
        "div.sg-col-inner div[data-asin]",
    ),
    "category": (
        "div#gridItemRoot",
        "div.zg-grid-general-faceout",
        "li.zg-item-immersion",
        "div.p13n-sc-uncoverable-faceout",
        "div[data-asin]",
    ),
    "store": (
        'li[data-testid="product-grid-item"]',
        'div[class*="ProductGridItem"]',
        'li[class*="ProductGridItem"]',
        "div[data-csa-c-item-id]",
        "div[data-asin]",
    ),
}

LINK_SELECTORS: Tuple[str, ...] = (
    "h2 a[href]",
    'a.a-link-normal[href*="/dp/"]',
    'a[href*="/dp/"]',
    'a[href*="/gp/product/"]',
    "a[href]",
)

DIRECT_LINK_SELECTORS: Tuple[str, ...] = (
    'a[href*="/dp/"]',
    'a[href*="/gp/product/"]',
    'a[href*="/gp/aw/d/"]',
)

# Navigation, footer, account and sponsored-click links
EXCLUDED_LINK_PATTERNS: Tuple[str, ...] = (
    r"^javascript:",
    r"^#",
    r"/gp/help/",
    r"/ap/signin",
    r"/gp/cart",
    r"/gp/css/",
    r"/product-reviews/",
    r"#customerReviews",
    r"/gp/redirect",
    r"/sspa/click",
    r"/gp/slredirect",
    r"/hz/wishlist",
    r"/gp/prime",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Both retry budgets of the fetcher and their delay curves."""

    max_retries: int = MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY
    rate_limit_max_retries: int = RATE_LIMIT_MAX_RETRIES
    rate_limit_base_delay: float = RATE_LIMIT_BASE_DELAY
    rate_limit_multiplier: float = RATE_LIMIT_MULTIPLIER
    rate_limit_max_delay: float = RATE_LIMIT_MAX_DELAY
    respect_retry_after: bool = RESPECT_RETRY_AFTER

    def max_cumulative_backoff(self) -> float:
        """Upper bound of all sleeps across both budgets (jitter included)."""
        transient = self.max_retries * self.base_delay
        rate_limited = self.rate_limit_max_retries * self.rate_limit_max_delay
        return transient + rate_limited


@dataclass(frozen=True)
class ScraperConfig:
    """Read-only configuration injected into every pipeline component."""

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    request_timeout: float = REQUEST_TIMEOUT
    request_deadline: float = REQUEST_DEADLINE
    max_redirects: int = MAX_REDIRECTS
    min_response_bytes: int = MIN_RESPONSE_BYTES
    headers: Tuple[Tuple[str, str], ...] = tuple(HEADERS.items())
    user_agents: Tuple[str, ...] = USER_AGENTS
    bot_challenge_signatures: Tuple[str, ...] = BOT_CHALLENGE_SIGNATURES
    branding_markers: Tuple[str, ...] = BRANDING_MARKERS
    currency_symbol: str = CURRENCY_SYMBOL
    max_list_items: int = MAX_LIST_ITEMS
    inter_item_delay_min: float = INTER_ITEM_DELAY_MIN
    inter_item_delay_max: float = INTER_ITEM_DELAY_MAX
    container_selectors: Tuple[Tuple[str, Tuple[str, ...]], ...] = tuple(
        CONTAINER_SELECTORS.items()
    )
    link_selectors: Tuple[str, ...] = LINK_SELECTORS
    direct_link_selectors: Tuple[str, ...] = DIRECT_LINK_SELECTORS
    excluded_link_patterns: Tuple[str, ...] = EXCLUDED_LINK_PATTERNS
    store_single_item_fallback: bool = True
    # Empty means any host is accepted
    allowed_domains: FrozenSet[str] = frozenset()

    def containers_for(self, page_class: str) -> Tuple[str, ...]:
        """Container selector chain for a page class value ('search', ...)."""
        for key, selectors in self.container_selectors:
            if key == page_class:
                return selectors
        return ()

    def worst_case_fetch_seconds(self) -> float:
        """Longest a single fetch can take: every attempt timing out plus all backoff.

        Redirect hops do not consume retry budget, so each allowed hop is
        counted as one more timed-out attempt.
        """
        attempts = 1 + self.retry.max_retries + self.retry.rate_limit_max_retries
        attempts += self.max_redirects
        return attempts * self.request_timeout + self.retry.max_cumulative_backoff()

    @classmethod
    def from_env(cls, prefix: str = "PRODUCTSCRAPE_") -> "ScraperConfig":
        """Build a config from defaults overridden by environment variables.

        Recognised variables (all optional): ``<prefix>REQUEST_TIMEOUT``,
        ``<prefix>MAX_RETRIES``, ``<prefix>RATE_LIMIT_MAX_RETRIES``,
        ``<prefix>RATE_LIMIT_MAX_DELAY``, ``<prefix>MAX_LIST_ITEMS``,
        ``<prefix>INTER_ITEM_DELAY_MIN``, ``<prefix>INTER_ITEM_DELAY_MAX``,
        ``<prefix>ALLOWED_DOMAINS`` (comma separated).
        """

        def _get(name: str) -> Optional[str]:
            value = os.getenv(prefix + name)
            return value if value not in (None, "") else None

        retry_kwargs = {}
        if _get("MAX_RETRIES") is not None:
            retry_kwargs["max_retries"] = int(_get("MAX_RETRIES"))
        if _get("RATE_LIMIT_MAX_RETRIES") is not None:
            retry_kwargs["rate_limit_max_retries"] = int(_get("RATE_LIMIT_MAX_RETRIES"))
        if _get("RATE_LIMIT_MAX_DELAY") is not None:
            retry_kwargs["rate_limit_max_delay"] = float(_get("RATE_LIMIT_MAX_DELAY"))

        kwargs = {"retry": RetryPolicy(**retry_kwargs)}
        if _get("REQUEST_TIMEOUT") is not None:
            kwargs["request_timeout"] = float(_get("REQUEST_TIMEOUT"))
        if _get("MAX_LIST_ITEMS") is not None:
            kwargs["max_list_items"] = int(_get("MAX_LIST_ITEMS"))
        if _get("INTER_ITEM_DELAY_MIN") is not None:
            kwargs["inter_item_delay_min"] = float(_get("INTER_ITEM_DELAY_MIN"))
        if _get("INTER_ITEM_DELAY_MAX") is not None:
            kwargs["inter_item_delay_max"] = float(_get("INTER_ITEM_DELAY_MAX"))
        if _get("ALLOWED_DOMAINS") is not None:
            kwargs["allowed_domains"] = frozenset(
                d.strip().lower() for d in _get("ALLOWED_DOMAINS").split(",") if d.strip()
            )
        return cls(**kwargs)
