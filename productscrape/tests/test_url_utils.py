"""Tests for URL classification, normalization and validation."""

import pytest

from productscrape.errors import ErrorKind, InvalidInputError
from productscrape.models import PageClass
from productscrape.url_utils import (
    absolute_url,
    classify,
    extract_item_id,
    item_url,
    normalize_url,
    sanitize_url,
    validate_url,
)


class TestClassify:
    """Page class detection."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.amazon.com/dp/B0TESTPRD1", PageClass.PRODUCT),
            ("https://www.amazon.com/Acme-Trail-Shoe/dp/B0TESTPRD1/ref=sr_1_3", PageClass.PRODUCT),
            ("https://www.amazon.com/gp/product/B0TESTPRD1", PageClass.PRODUCT),
            ("https://www.amazon.com/s?k=trail+shoes", PageClass.SEARCH),
            ("https://www.amazon.com/gp/bestsellers/electronics", PageClass.CATEGORY),
            ("https://www.amazon.com/Best-Sellers-Kitchen/zgbs/kitchen", PageClass.CATEGORY),
            ("https://www.amazon.com/stores/Acme/page/1234", PageClass.STORE),
            ("https://www.amazon.com/sp?seller=A1B2C3D4E5", PageClass.STORE),
            ("https://www.amazon.com/gp/help/customer", PageClass.UNKNOWN),
        ],
    )
    def test_page_classes(self, url, expected):
        assert classify(url).page_class is expected

    def test_deterministic_on_any_host(self):
        assert classify("https://site.example/dp/B0TESTPRD01") == classify("https://site.example/dp/B0TESTPRD01")
        assert classify("https://site.example/dp/B0TESTPRD01").page_class is PageClass.PRODUCT
        assert classify("https://site.example/s?k=shoes").page_class is PageClass.SEARCH

    def test_product_wins_over_store_pattern(self):
        """An item path inside a store section is still a product page."""
        descriptor = classify("https://www.amazon.com/stores/Acme/dp/B0TESTPRD1")
        assert descriptor.page_class is PageClass.PRODUCT

    def test_bestsellers_is_not_a_store(self):
        """'bestsellers' contains 'seller' but category is checked first."""
        assert classify("https://www.amazon.com/gp/bestsellers/").page_class is PageClass.CATEGORY

    def test_keeps_raw_url(self):
        raw = "https://www.amazon.com/dp/B0TESTPRD1?tag=aff-20"
        descriptor = classify(raw)
        assert descriptor.raw == raw
        assert descriptor.normalized == "https://www.amazon.com/dp/B0TESTPRD1"

    @pytest.mark.parametrize("raw", [None, "", "   ", "not a url", "ftp://files.example.com/x", 42])
    def test_never_raises(self, raw):
        """Garbage input classifies as UNKNOWN instead of raising."""
        assert classify(raw).page_class is PageClass.UNKNOWN


class TestNormalizeUrl:
    """Canonical URL form."""

    def test_strips_tracking_params_and_fragment(self):
        url = "https://www.amazon.com/dp/B0TESTPRD1?tag=aff-20&utm_source=x&th=1&psc=1#reviews"
        assert normalize_url(url) == "https://www.amazon.com/dp/B0TESTPRD1"

    def test_keeps_search_keywords(self):
        url = "https://www.amazon.com/s?k=trail+shoes&ref=nb_sb_noss&qid=123"
        assert normalize_url(url) == "https://www.amazon.com/s?k=trail+shoes"

    @pytest.mark.parametrize(
        "path",
        ["/gp/product/B0TESTPRD1", "/dp/product/B0TESTPRD1", "/gp/aw/d/B0TESTPRD1"],
    )
    def test_rewrites_legacy_item_paths(self, path):
        assert normalize_url("https://www.amazon.com" + path) == "https://www.amazon.com/dp/B0TESTPRD1"

    def test_drops_ref_suffix(self):
        url = "https://www.amazon.com/Acme/dp/B0TESTPRD1/ref=sr_1_3"
        assert normalize_url(url) == "https://www.amazon.com/Acme/dp/B0TESTPRD1"

    def test_sanitize_removes_control_characters(self):
        assert sanitize_url("  https://www.amazon.com/\x00dp\n/B0TESTPRD1 ") == (
            "https://www.amazon.com/dp/B0TESTPRD1"
        )


class TestValidateUrl:
    """Caller input validation."""

    def test_accepts_http_url(self):
        assert validate_url(" https://www.amazon.com/dp/B0TESTPRD1 ") == (
            "https://www.amazon.com/dp/B0TESTPRD1"
        )

    @pytest.mark.parametrize(
        "url",
        [
            "",
            None,
            "javascript:alert(1)",
            "ftp://www.amazon.com/dp/B0TESTPRD1",
            "https://",
            "https://www.amazon.com/../../etc/passwd",
            "https://www.amazon.com/s?k=<script>",
        ],
    )
    def test_rejects_bad_input(self, url):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_url(url)
        assert exc_info.value.kind is ErrorKind.INVALID_INPUT
        assert exc_info.value.status_code == 400

    def test_allowed_domains_accept_subdomains(self):
        url = "https://smile.amazon.com/dp/B0TESTPRD1"
        assert validate_url(url, {"amazon.com"}) == url

    def test_allowed_domains_reject_other_hosts(self):
        with pytest.raises(InvalidInputError, match="not supported"):
            validate_url("https://notamazon.com/dp/B0TESTPRD1", {"amazon.com"})


class TestItemHelpers:
    """Item id extraction and URL building."""

    def test_extract_item_id(self):
        assert extract_item_id("https://www.amazon.com/Acme/dp/B0TESTPRD1/ref=x") == "B0TESTPRD1"
        assert extract_item_id("https://www.amazon.com/gp/product/B0TESTPRD1") == "B0TESTPRD1"

    def test_extract_item_id_missing(self):
        assert extract_item_id("https://www.amazon.com/s?k=shoes") is None
        assert extract_item_id("") is None

    def test_item_url_uses_source_host(self):
        assert item_url("https://www.amazon.co.uk/s?k=x", "B0TESTPRD1") == (
            "https://www.amazon.co.uk/dp/B0TESTPRD1"
        )

    def test_absolute_url(self):
        assert absolute_url("https://www.amazon.com/s?k=x", "/dp/B0TESTPRD1") == (
            "https://www.amazon.com/dp/B0TESTPRD1"
        )
