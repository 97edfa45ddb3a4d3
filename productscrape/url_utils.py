"""URL classification, normalization and validation.

``classify`` is a pure function: it never performs I/O and never raises.
Anything it cannot make sense of is classified as ``PageClass.UNKNOWN``.
"""

import re
from typing import FrozenSet, Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from productscrape.errors import InvalidInputError
from productscrape.models import PageClass, URLDescriptor

__all__ = [
    "classify",
    "normalize_url",
    "sanitize_url",
    "validate_url",
    "extract_item_id",
    "absolute_url",
    "item_url",
    "ITEM_ID_RE",
    "URL_PATTERNS",
]

# Canonical 10-character item identifier
ITEM_ID_RE = re.compile(r"^[A-Z0-9]{10}$")

CANONICAL_ITEM_PATH_RE = re.compile(r"/dp/([A-Z0-9]{10})(?=[/?#]|$)")

# Malformed or legacy item paths rewritten to /dp/<id>
MALFORMED_ITEM_PATHS = (
    re.compile(r"/dp/product/([A-Z0-9]{10})"),
    re.compile(r"/gp/product/([A-Z0-9]{10})"),
    re.compile(r"/gp/aw/d/([A-Z0-9]{10})"),
)

# Trailing "/ref=sr_1_1" style segments after an item path
ITEM_REF_SUFFIX_RE = re.compile(r"(/dp/[A-Z0-9]{10})/ref=[^/]*/?$")

# Ordered from most to least specific; the first group that matches wins
URL_PATTERNS = (
    (
        PageClass.PRODUCT,
        (
            re.compile(r"/dp/[A-Z0-9]{10}"),
            re.compile(r"/gp/product/[A-Z0-9]{10}"),
            re.compile(r"/product/[A-Z0-9]{10}"),
        ),
    ),
    (
        PageClass.SEARCH,
        (
            re.compile(r"/s\?"),
            re.compile(r"[?&]k="),
            re.compile(r"/s/ref="),
            re.compile(r"/s$"),
        ),
    ),
    (
        PageClass.CATEGORY,
        (
            re.compile(r"/gp/bestsellers"),
            re.compile(r"/zgbs/"),
            re.compile(r"/Best-Sellers-"),
            re.compile(r"/gp/top-sellers"),
            re.compile(r"/gp/new-releases"),
            re.compile(r"/most-wished-for"),
            re.compile(r"/movers-and-shakers"),
        ),
    ),
    (
        PageClass.STORE,
        (
            re.compile(r"/stores/"),
            re.compile(r"/shop/"),
            re.compile(r"/brand/"),
            re.compile(r"seller"),
            re.compile(r"/b\?node="),
        ),
    ),
)

TRACKING_PARAM_PREFIXES = ("utm_", "tag", "plattr", "pf_", "pd_rd_", "pf_rd_", "ref_")
TRACKING_PARAMS = frozenset({
    "ref",
    "linkCode",
    "camp",
    "creative",
    "creativeASIN",
    "ie",
    "qid",
    "sr",
    "crid",
    "sprefix",
    "psc",
    "th",
    "smid",
    "spIA",
})

DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}

SUSPICIOUS_PATTERNS = (
    re.compile(r"\.\./"),
    re.compile(r"%2e%2e", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
)


def sanitize_url(url: str) -> str:
    """Strip whitespace, control characters and null bytes."""
    if not url:
        return ""
    url = url.strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)
    return url.replace("%00", "")


def _is_tracking_param(key: str) -> bool:
    if key in TRACKING_PARAMS or "tracking" in key.lower():
        return True
    return any(key.startswith(prefix) for prefix in TRACKING_PARAM_PREFIXES)


def _canonical_item_path(path: str) -> str:
    for pattern in MALFORMED_ITEM_PATHS:
        path = pattern.sub(r"/dp/\1", path)
    return ITEM_REF_SUFFIX_RE.sub(r"\1", path)


def normalize_url(raw_url: str) -> str:
    """Canonicalize a URL before classification.

    Drops the fragment and tracking/session query parameters, and rewrites
    malformed item paths (``/gp/product/<id>``, ``/dp/product/<id>``) to
    ``/dp/<id>``. Unparseable input falls back to stripping query and
    fragment.
    """
    url = sanitize_url(raw_url)
    if not url:
        return ""
    try:
        parts = urlsplit(url)
        query = [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if not _is_tracking_param(key)
        ]
        path = _canonical_item_path(parts.path)
        return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), ""))
    except ValueError:
        return url.split("#")[0].split("?")[0]


def classify(raw_url: str) -> URLDescriptor:
    """Map a raw URL to its normalized form and page class.

    Product patterns are checked first so the broad store/category substring
    patterns can never shadow an item path.
    """
    if not isinstance(raw_url, str):
        return URLDescriptor(raw=repr(raw_url), normalized="", page_class=PageClass.UNKNOWN)

    normalized = normalize_url(raw_url)
    if not normalized:
        return URLDescriptor(raw=raw_url, normalized="", page_class=PageClass.UNKNOWN)

    try:
        parts = urlsplit(normalized)
    except ValueError:
        return URLDescriptor(raw=raw_url, normalized=normalized, page_class=PageClass.UNKNOWN)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return URLDescriptor(raw=raw_url, normalized=normalized, page_class=PageClass.UNKNOWN)

    for page_class, patterns in URL_PATTERNS:
        if any(pattern.search(normalized) for pattern in patterns):
            return URLDescriptor(raw=raw_url, normalized=normalized, page_class=page_class)

    return URLDescriptor(raw=raw_url, normalized=normalized, page_class=PageClass.UNKNOWN)


def validate_url(url: str, allowed_domains: Optional[Iterable[str]] = None) -> str:
    """Validate a caller-supplied URL.

    Args:
        url: URL to validate
        allowed_domains: Hosts to accept (subdomains included); empty or None
            accepts any host

    Returns:
        The sanitized URL

    Raises:
        InvalidInputError: If the URL is empty, malformed or not allowed
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidInputError("URL is required", url=url)

    url = sanitize_url(url)
    try:
        parsed = urlsplit(url)
    except ValueError as e:
        raise InvalidInputError("Please enter a valid URL format", url=url) from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise InvalidInputError(f"Dangerous URL scheme: {scheme}", url=url)
    if scheme not in ("http", "https"):
        raise InvalidInputError("Please enter a valid URL format", url=url)

    host = (parsed.hostname or "").lower()
    if not host:
        raise InvalidInputError("URL has no domain", url=url)

    domains: FrozenSet[str] = frozenset(d.lower() for d in (allowed_domains or ()))
    if domains and not any(host == d or host.endswith("." + d) for d in domains):
        raise InvalidInputError(
            f"URL domain '{host}' is not supported", url=url, allowed_domains=sorted(domains)
        )

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(url):
            raise InvalidInputError("URL contains a suspicious pattern", url=url)

    return url


def extract_item_id(url: str) -> Optional[str]:
    """Return the item identifier from a canonical item path, if present."""
    if not url:
        return None
    match = CANONICAL_ITEM_PATH_RE.search(_canonical_item_path(url))
    return match.group(1) if match else None


def absolute_url(base_url: str, href: str) -> str:
    """Resolve a possibly relative link against the page it was found on."""
    return urljoin(base_url, href.strip())


def item_url(base_url: str, item_id: str) -> str:
    """Build the canonical item URL on the same host as ``base_url``."""
    parts = urlsplit(base_url)
    return urlunsplit((parts.scheme or "https", parts.netloc, f"/dp/{item_id}", "", ""))
