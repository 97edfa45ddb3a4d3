"""Tests for field extraction and the rule combinator."""

import pytest
from bs4 import BeautifulSoup

from productscrape.config import NOT_AVAILABLE
from productscrape.errors import ErrorKind, ExtractionError
from productscrape.extractor import (
    FieldExtractor,
    normalize_price,
    normalize_rating,
    normalize_review_count,
)
from productscrape.html_utils import (
    Page,
    Rule,
    clean_text,
    first_match,
    iter_json_values,
    meta_content,
    regex,
    select_attr,
    select_text,
)
from productscrape.tests.pages import FILLER, PRODUCT_URL, make_document, make_product_html


@pytest.fixture
def extractor(config):
    return FieldExtractor(config)


class TestProductExtraction:
    """Full product pages."""

    def test_all_fields(self, extractor):
        record = extractor.extract(make_document(make_product_html()), PRODUCT_URL)

        assert record.title == "Acme Trail Shoe"
        assert record.price == "$59.99"
        assert record.item_id == "B0TESTPRD1"
        assert record.rating == "4.5 out of 5 stars"
        assert record.review_count == "1,234 ratings"
        assert record.url == PRODUCT_URL
        assert record.error is None

    def test_accepts_raw_html(self, extractor):
        record = extractor.extract(make_product_html(), PRODUCT_URL)
        assert record.title == "Acme Trail Shoe"

    def test_missing_price_is_sentinel(self, extractor):
        record = extractor.extract(make_document(make_product_html(price=None)), PRODUCT_URL)

        assert record.price == NOT_AVAILABLE
        assert record.title == "Acme Trail Shoe"

    def test_missing_optional_fields_are_sentinel(self, extractor):
        html = make_product_html(rating=None, reviews=None)
        record = extractor.extract(make_document(html), PRODUCT_URL)

        assert record.rating == NOT_AVAILABLE
        assert record.review_count == NOT_AVAILABLE

    def test_url_item_id_is_authoritative(self, extractor):
        html = make_product_html(page_item_id="B0OTHERID1")
        record = extractor.extract(make_document(html), PRODUCT_URL)
        assert record.item_id == "B0TESTPRD1"

    def test_page_item_id_used_without_url_id(self, extractor):
        html = make_product_html(page_item_id="B0OTHERID1")
        record = extractor.extract(make_document(html), "https://www.amazon.com/stores/Acme/page/1")
        assert record.item_id == "B0OTHERID1"

    def test_nothing_resolved_raises(self, extractor):
        html = f"<html><body>{FILLER}</body></html>"

        with pytest.raises(ExtractionError) as exc_info:
            extractor.extract(make_document(html), PRODUCT_URL)

        error = exc_info.value
        assert error.kind is ErrorKind.EXTRACTION_FAILURE
        assert error.status_code == 422
        assert error.context["url"] == PRODUCT_URL
        assert error.context["bot_challenge"] is False

    def test_challenge_page_without_data_mentions_challenge(self, extractor):
        html = f"<html><body>Enter the characters you see below{FILLER}</body></html>"

        with pytest.raises(ExtractionError, match="anti-automation challenge"):
            extractor.extract(make_document(html, bot_challenge=True), PRODUCT_URL)

    def test_challenge_page_with_data_still_extracts(self, extractor):
        record = extractor.extract(make_document(make_product_html(), bot_challenge=True), PRODUCT_URL)
        assert record.title == "Acme Trail Shoe"


class TestFallbackChains:
    """Later rules fill in when earlier ones miss."""

    def test_title_falls_back_to_h1(self, extractor):
        html = make_product_html(title=None, extra="<h1>  Acme   Camp Stove </h1>")
        record = extractor.extract(make_document(html), PRODUCT_URL)
        assert record.title == "Acme Camp Stove"

    def test_branded_titles_are_rejected(self, extractor):
        """A heading that is only site branding is skipped for og:title."""
        html = (
            "<html><head><title>Amazon.com: Acme Lamp</title>"
            '<meta property="og:title" content="Acme Desk Lamp"></head>'
            f"<body><h1>Amazon.com</h1>{FILLER}</body></html>"
        )
        record = extractor.extract(make_document(html), PRODUCT_URL)
        assert record.title == "Acme Desk Lamp"

    def test_title_regex_decodes_entities(self, extractor):
        html = f"<html><head><title>Tom &amp; Jerry Mug</title></head><body>{FILLER}</body></html>"
        record = extractor.extract(make_document(html), PRODUCT_URL)
        assert record.title == "Tom & Jerry Mug"

    def test_price_falls_back_to_whole_part(self, extractor):
        html = make_product_html(price=None, extra='<span class="a-price-whole">24.</span>')
        record = extractor.extract(make_document(html), PRODUCT_URL)
        assert record.price == "$24"

    def test_rating_from_text_pattern(self, extractor):
        html = make_product_html(rating=None, extra="<div>Rated 4.2 out of 5 stars by buyers</div>")
        record = extractor.extract(make_document(html), PRODUCT_URL)
        assert record.rating == "4.2 out of 5 stars"

    def test_review_count_from_text_pattern(self, extractor):
        html = make_product_html(reviews=None, extra="<div>87 global ratings</div>")
        record = extractor.extract(make_document(html), PRODUCT_URL)
        assert record.review_count == "87 global ratings"


class TestListingSummary:
    """Weak records built from a listing container."""

    def test_summary_from_container(self, extractor):
        soup = BeautifulSoup(
            '<div data-asin="B0ITEM0001"><h2><a href="/dp/B0ITEM0001"><span>Acme Sock</span></a></h2>'
            '<span class="a-price"><span class="a-offscreen">$9.99</span></span>'
            '<span class="a-icon-alt">4.1 out of 5 stars</span></div>',
            "html.parser",
        )
        record = extractor.summarize(soup.div, "https://www.amazon.com/s?k=socks")

        assert record.title == "Acme Sock"
        assert record.price == "$9.99"
        assert record.rating == "4.1 out of 5 stars"
        assert record.item_id == "B0ITEM0001"

    def test_empty_container_gives_none(self, extractor):
        soup = BeautifulSoup("<div><span></span></div>", "html.parser")
        assert extractor.summarize(soup.div, "https://www.amazon.com/dp/B0ITEM0001") is None


class TestNormalizers:
    """Per-field value normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("$19.99", "$19.99"),
            ("  $ 1,299.00 ", "$1,299.00"),
            ("EUR 1.299,00 €", "€1.299,00"),
            ("£7", "£7"),
            ("24.", "$24"),
        ],
    )
    def test_price(self, raw, expected):
        assert normalize_price(raw) == expected

    def test_price_without_digits_rejected(self):
        assert normalize_price("Currently unavailable") is None

    def test_price_default_symbol_is_configurable(self):
        assert normalize_price("12.50", currency_symbol="€") == "€12.50"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("4.5 out of 5 stars", "4.5 out of 5 stars"),
            ("4,6 von 5 Sternen", "4.6 out of 5 stars"),
            ("5", "5 out of 5 stars"),
        ],
    )
    def test_rating(self, raw, expected):
        assert normalize_rating(raw) == expected

    @pytest.mark.parametrize("raw", ["7.5 out of 5 stars", "no stars yet"])
    def test_rating_rejected(self, raw):
        assert normalize_rating(raw) is None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1,234 ratings", "1,234 ratings"),
            ("56 customer reviews", "56 customer reviews"),
            ("(1,234)", "1,234 ratings"),
        ],
    )
    def test_review_count(self, raw, expected):
        assert normalize_review_count(raw) == expected

    def test_review_count_without_digits_rejected(self):
        assert normalize_review_count("Be the first to review") is None


class TestRuleCombinator:
    """The generic first-match fallback chain."""

    PAGE = Page.parse(
        '<html><head><meta property="og:title" content="Meta Title"></head>'
        '<body><h1></h1><h2 class="x">Second</h2><a data-id="A1">x</a>'
        "<script>var id = 'ZX81';</script></body></html>"
    )

    def test_skips_empty_matches(self):
        rules = [select_text("h1"), select_text("h2.x")]
        assert first_match(rules, self.PAGE) == ("Second", "h2.x")

    def test_normalizer_can_reject(self):
        rules = [select_text("h2.x"), meta_content("og:title")]
        hit = first_match(rules, self.PAGE, lambda v: v if v.startswith("Meta") else None)
        assert hit == ("Meta Title", "meta:og:title")

    def test_attribute_and_regex_rules(self):
        assert first_match([select_attr("a", "data-id")], self.PAGE)[0] == "A1"
        assert first_match([regex(r"var id = '(\w+)'")], self.PAGE)[0] == "ZX81"

    def test_no_match_returns_none(self):
        assert first_match([select_text("table"), regex(r"nothing-here")], self.PAGE) is None

    def test_custom_rule(self):
        rule = Rule(name="custom", matcher=lambda page: page.url, extractor=str.upper)
        page = Page.parse("<p></p>", url="https://example.com")
        assert first_match([rule], page) == ("HTTPS://EXAMPLE.COM", "custom")

    def test_clean_text(self):
        assert clean_text("  Fish &amp;\n Chips ") == "Fish & Chips"
        assert clean_text(None) == ""

    def test_iter_json_values_walks_nested_data(self):
        data = {"a": {"asin": "X"}, "b": [{"asin": "Y"}, {"other": 1}]}
        assert list(iter_json_values(data, ("asin",))) == ["X", "Y"]

    def test_regex_flags(self):
        page = Page.parse("<p>PRICE: 5</p>")
        assert first_match([regex(r"price: (\d)")], page)[0] == "5"
        assert first_match([regex(r"price: (\d)", flags=0)], page) is None
