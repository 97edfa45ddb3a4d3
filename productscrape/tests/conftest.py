"""Shared fixtures for scraper tests.

HTTP is never touched: sessions are MagicMocks whose ``get`` returns real
``requests.Response`` objects built by ``pages.make_response``.
"""

import logging
import random
from typing import Callable, Dict, Optional
from unittest.mock import MagicMock

import pytest
import requests  # type: ignore[import-untyped]

from productscrape.config import ScraperConfig
from productscrape.logging_config import ROOT_LOGGER
from productscrape.tests.pages import make_response


@pytest.fixture
def config():
    """Default configuration."""
    return ScraperConfig()


@pytest.fixture
def sleeps():
    """Records every requested sleep instead of sleeping."""
    return []


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def session():
    """Mock session; set ``session.get.side_effect`` in the test."""
    return MagicMock(spec=requests.Session)


@pytest.fixture
def routed_session(session):
    """Mock session answering from a {url: response-or-exception} table.

    Unrouted URLs get ``default(url)`` when given, else a 404.
    """

    def _route(routes: Dict[str, object], default: Optional[Callable[[str], object]] = None):
        def get(url, **kwargs):
            result = routes.get(url)
            if result is None and default is not None:
                result = default(url)
            if result is None:
                return make_response(404, b"", url=url, reason="Not Found")
            if isinstance(result, Exception):
                raise result
            return result

        session.get.side_effect = get
        return session

    return _route


@pytest.fixture(autouse=True)
def reset_package_logging():
    """Drop handlers added by setup_logging so captured streams don't leak."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
