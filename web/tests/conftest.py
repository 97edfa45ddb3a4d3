"""Shared test fixtures for the web test suite."""

import os
from unittest.mock import MagicMock, patch

import pytest

# Must be set before web.config is imported
os.environ.setdefault("LOG_TO_FILE", "False")

from productscrape.models import ListResult, PageClass, ProductRecord, Provenance  # noqa: E402
from productscrape.scraper import Scraper  # noqa: E402


@pytest.fixture
def app():
    from web.app import app as flask_app

    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def mock_scraper():
    """Patch the scraper the API builds per request."""
    scraper = MagicMock(spec=Scraper)
    with patch("web.api.get_scraper", return_value=scraper):
        yield scraper


@pytest.fixture
def product_record():
    return ProductRecord(
        url="https://www.amazon.com/dp/B0TESTPRD1",
        title="Acme Trail Shoe",
        price="$59.99",
        item_id="B0TESTPRD1",
        rating="4.5 out of 5 stars",
        review_count="1,234 ratings",
    )


@pytest.fixture
def list_result(product_record):
    """Five items, one of which failed."""
    items = [
        ProductRecord(
            url=f"https://www.amazon.com/dp/B0ITEM000{n}",
            title=f"Item {n}",
            item_id=f"B0ITEM000{n}",
        )
        for n in range(1, 5)
    ]
    items.append(
        ProductRecord(
            url="https://www.amazon.com/dp/B0ITEM0005",
            item_id="B0ITEM0005",
            error="timeout: Page loading timeout.",
        )
    )
    return ListResult(
        source_url="https://www.amazon.com/s?k=trail+shoes",
        page_class=PageClass.SEARCH,
        items=tuple(items),
        provenance=(Provenance.DETAIL_FETCH,) * 5,
    )
