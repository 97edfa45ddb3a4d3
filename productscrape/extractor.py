"""Field extraction from product pages and listing containers.

Each field has an ordered fallback chain: structural selectors first, then
looser selectors, then regular expressions over the raw markup. A field no
rule resolves is set to ``NOT_AVAILABLE``; only a page where title, price
and rating all miss is treated as an extraction failure.
"""

import re
from typing import Optional, Sequence, Tuple, Union

from bs4 import Tag

from productscrape.config import NOT_AVAILABLE, ScraperConfig
from productscrape.errors import ExtractionError
from productscrape.html_utils import (
    Page,
    Rule,
    clean_text,
    first_match,
    meta_content,
    regex,
    select_attr,
    select_text,
)
from productscrape.logging_config import get_logger
from productscrape.models import Document, ProductRecord
from productscrape.url_utils import ITEM_ID_RE, extract_item_id

__all__ = [
    "FieldExtractor",
    "TITLE_RULES",
    "PRICE_RULES",
    "ITEM_ID_RULES",
    "RATING_RULES",
    "REVIEW_COUNT_RULES",
    "SUMMARY_TITLE_RULES",
    "SUMMARY_PRICE_RULES",
    "SUMMARY_RATING_RULES",
    "SUMMARY_REVIEW_COUNT_RULES",
    "normalize_price",
    "normalize_rating",
    "normalize_review_count",
]

logger = get_logger("extractor")

CURRENCY_SYMBOLS = ("$", "€", "£", "¥", "₹")


# =============================================================================
# Product Page Chains
# =============================================================================

TITLE_RULES: Tuple[Rule, ...] = (
    select_text("#productTitle"),
    select_text("h1#title"),
    select_text("h1.product-title"),
    select_text("h1"),
    meta_content("og:title"),
    regex(r"<title[^>]*>([^<]+)</title>", name="<title>"),
)

PRICE_RULES: Tuple[Rule, ...] = (
    select_text("#corePrice_feature_div .a-offscreen"),
    select_text("#corePriceDisplay_desktop_feature_div .a-offscreen"),
    select_text("#priceblock_ourprice"),
    select_text("#priceblock_dealprice"),
    select_text(".a-price .a-offscreen"),
    select_text(".a-price-whole"),
    select_text("span.price"),
    meta_content("product:price:amount"),
    regex(r"Price[^:<]*:\s*([$€£]?\s?[0-9][0-9,]*\.?[0-9]*)", name="price-text"),
)

ITEM_ID_RULES: Tuple[Rule, ...] = (
    select_attr("input#ASIN", "value"),
    select_attr("input[name='ASIN']", "value"),
    select_attr("[data-asin]", "data-asin"),
    select_attr("[data-csa-c-asin]", "data-csa-c-asin"),
    regex(r"""["']asin["']\s*:\s*["']([A-Z0-9]{10})["']""", name="json-asin"),
    regex(r"""['"](B[A-Z0-9]{9})['"]""", flags=0, name="quoted-id"),
)

RATING_RULES: Tuple[Rule, ...] = (
    select_attr("#acrPopover", "title"),
    select_text("[data-hook='rating-out-of-text']"),
    select_text("#acrPopover span.a-icon-alt"),
    select_text("i.a-icon-star span.a-icon-alt"),
    select_text("span.a-icon-alt"),
    regex(r"([0-9][0-9.,]*)\s+out\s+of\s+5\s+stars", group=0, name="out-of-5"),
    regex(r"rating[^>]*>\s*([0-9](?:[.,][0-9])?)\s*<", name="rating-tag"),
)

REVIEW_COUNT_RULES: Tuple[Rule, ...] = (
    select_text("#acrCustomerReviewText"),
    select_text("[data-hook='total-review-count']"),
    select_text("#averageCustomerReviews a[href*='customerReviews'] span"),
    regex(r"([0-9][0-9,.]*)\s+(?:global\s+)?ratings?\b", group=0, name="n-ratings"),
    regex(r"([0-9][0-9,.]*)\s+(?:customer\s+)?reviews?\b", group=0, name="n-reviews"),
)


# =============================================================================
# Listing Container Chains (summary fallback)
# =============================================================================

SUMMARY_TITLE_RULES: Tuple[Rule, ...] = (
    select_text("h2 a span"),
    select_text("h2"),
    select_text("[class*='title']"),
    select_text("a.a-link-normal span.a-text-normal"),
    select_attr("img[alt]", "alt"),
)

SUMMARY_PRICE_RULES: Tuple[Rule, ...] = (
    select_text(".a-price .a-offscreen"),
    select_text(".a-price-whole"),
    select_text("[class*='price']"),
    regex(r"([$€£]\s?[0-9][0-9,]*\.?[0-9]*)", name="currency-text"),
)

SUMMARY_RATING_RULES: Tuple[Rule, ...] = (
    select_text("span.a-icon-alt"),
    select_attr("[aria-label*='out of 5 stars']", "aria-label"),
    regex(r"([0-9][0-9.,]*)\s+out\s+of\s+5\s+stars", group=0, name="out-of-5"),
)

SUMMARY_REVIEW_COUNT_RULES: Tuple[Rule, ...] = (
    select_attr("[aria-label$='ratings']", "aria-label"),
    select_text("a[href*='customerReviews'] span"),
    regex(r"([0-9][0-9,.]*)\s+ratings?\b", group=0, name="n-ratings"),
)


# =============================================================================
# Normalizers (return None to reject a candidate)
# =============================================================================

def normalize_price(raw: str, currency_symbol: str = "$") -> Optional[str]:
    """Keep digits and separators and re-prefix the currency symbol."""
    text = clean_text(raw)
    symbol = next((s for s in CURRENCY_SYMBOLS if s in text), currency_symbol)
    digits = re.sub(r"[^\d.,]", "", text).strip(".,")
    if not digits or not re.search(r"\d", digits):
        return None
    return f"{symbol}{digits}"


def normalize_rating(raw: str) -> Optional[str]:
    """Turn any rating text into '<value> out of 5 stars'."""
    match = re.search(r"\d+(?:[.,]\d+)?", clean_text(raw))
    if not match:
        return None
    value = match.group(0).replace(",", ".")
    try:
        if not 0 <= float(value) <= 5:
            return None
    except ValueError:
        return None
    return f"{value} out of 5 stars"


def normalize_review_count(raw: str) -> Optional[str]:
    """Pass through text that already says rating/review, else '<count> ratings'."""
    text = clean_text(raw)
    if not re.search(r"\d", text):
        return None
    lowered = text.lower()
    if "rating" in lowered or "review" in lowered:
        return text
    match = re.search(r"\d[\d,.]*", text)
    if not match:
        return None
    return f"{match.group(0).strip('.,')} ratings"


def normalize_item_id(raw: str) -> Optional[str]:
    value = raw.strip()
    return value if ITEM_ID_RE.match(value) else None


class FieldExtractor:
    """Builds ``ProductRecord`` objects from pages using per-field fallback chains."""

    def __init__(self, config: Optional[ScraperConfig] = None) -> None:
        self.config = config or ScraperConfig()

    def normalize_title(self, raw: str) -> Optional[str]:
        """Collapse whitespace; reject site branding and challenge-page titles."""
        title = clean_text(raw)
        if not title:
            return None
        lowered = title.lower()
        if any(marker in lowered for marker in self.config.branding_markers):
            return None
        return title

    def _normalize_price(self, raw: str) -> Optional[str]:
        return normalize_price(raw, self.config.currency_symbol)

    def extract(self, document: Union[Document, str], source_url: str) -> ProductRecord:
        """Extract a product record from a fetched page.

        Args:
            document: Fetched ``Document`` (or raw HTML)
            source_url: URL the page was requested for

        Returns:
            ProductRecord with unresolved fields set to NOT_AVAILABLE

        Raises:
            ExtractionError: If title, price and rating are all unresolved
        """
        if isinstance(document, Document):
            html, bot_challenge = document.html, document.bot_challenge
        else:
            html, bot_challenge = document, False

        page = Page.parse(html, source_url)
        record = self._build_record(
            page,
            source_url,
            (TITLE_RULES, PRICE_RULES, RATING_RULES, REVIEW_COUNT_RULES),
            item_id_rules=ITEM_ID_RULES,
        )

        if not record.has_signal():
            if bot_challenge:
                message = (
                    "The site served an anti-automation challenge and no product data "
                    "could be extracted."
                )
            else:
                message = "No product data could be extracted from the page."
            logger.error(f"Extraction failed for {source_url} (bot challenge: {bot_challenge})")
            raise ExtractionError(
                message, url=source_url, bot_challenge=bot_challenge, record=record
            )

        logger.info(f"Extracted {record.item_id} '{record.title[:60]}' from {source_url}")
        return record

    def summarize(self, container: Tag, item_url: str) -> Optional[ProductRecord]:
        """Build a weaker record from a listing container's own text.

        Returns None when the container shows no title, price or rating.
        """
        page = Page.from_tag(container, item_url)
        record = self._build_record(
            page,
            item_url,
            (
                SUMMARY_TITLE_RULES,
                SUMMARY_PRICE_RULES,
                SUMMARY_RATING_RULES,
                SUMMARY_REVIEW_COUNT_RULES,
            ),
            item_id_rules=(),
            container_item_id=container.get("data-asin"),
        )
        return record if record.has_signal() else None

    def _build_record(
        self,
        page: Page,
        url: str,
        chains: Tuple[Sequence[Rule], Sequence[Rule], Sequence[Rule], Sequence[Rule]],
        item_id_rules: Sequence[Rule],
        container_item_id: Optional[str] = None,
    ) -> ProductRecord:
        title_rules, price_rules, rating_rules, review_rules = chains

        fields = {}
        for name, rules, normalize in (
            ("title", title_rules, self.normalize_title),
            ("price", price_rules, self._normalize_price),
            ("rating", rating_rules, normalize_rating),
            ("review_count", review_rules, normalize_review_count),
        ):
            hit = first_match(rules, page, normalize)
            if hit:
                fields[name], rule_name = hit
                logger.debug(f"{name} resolved by rule {rule_name}")
            else:
                fields[name] = NOT_AVAILABLE
                logger.debug(f"{name} not found on {url}")

        fields["item_id"] = self._resolve_item_id(page, url, item_id_rules, container_item_id)
        return ProductRecord(url=url, **fields)

    @staticmethod
    def _resolve_item_id(
        page: Page,
        url: str,
        rules: Sequence[Rule],
        container_item_id: Optional[str] = None,
    ) -> str:
        # The URL item path is authoritative; nothing else may override it
        from_url = extract_item_id(url)
        if from_url:
            return from_url
        if container_item_id and normalize_item_id(container_item_id):
            return container_item_id.strip()
        hit = first_match(rules, page, normalize_item_id)
        return hit[0] if hit else NOT_AVAILABLE
