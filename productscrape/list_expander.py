"""Listing expansion: discover item links, scrape each item, aggregate.

Discovery tiers, in order:

1. Repeating containers (per page class selector chain) and a link chain
   inside each container.
2. Page-wide direct item-link search when no container matched.
3. For store pages, item identifiers embedded in script/JSON blocks.

Items are fetched one at a time with a random pause in between. A failed
item degrades to the container's own summary, or to an error-flagged
record; only a listing with no discoverable items at all is an error.
"""

import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from productscrape.config import NOT_AVAILABLE, ScraperConfig
from productscrape.errors import ErrorKind, NoItemsFoundError, ScrapeError
from productscrape.extractor import FieldExtractor
from productscrape.fetcher import Fetcher
from productscrape.html_utils import iter_json_values, iter_script_blocks, load_json_block
from productscrape.logging_config import get_logger, log_scrape_event
from productscrape.models import Document, ListResult, PageClass, ProductRecord, Provenance
from productscrape.url_utils import (
    ITEM_ID_RE,
    absolute_url,
    classify,
    extract_item_id,
    item_url,
)

__all__ = ["Candidate", "ListExpander"]

logger = get_logger("list_expander")

EMBEDDED_ID_PATTERNS = (
    re.compile(r"""["'](?:asin|ASIN|itemId|productId)["']\s*:\s*["']([A-Z0-9]{10})["']"""),
    re.compile(r"""data-asin=\\?["']([A-Z0-9]{10})\\?["']"""),
    re.compile(r"/dp/([A-Z0-9]{10})"),
)

EMBEDDED_ID_KEYS = ("asin", "ASIN", "asins", "asinList", "itemId", "productId")


@dataclass
class Candidate:
    """An item link discovered on a listing page."""

    url: str
    container: Optional[Tag] = None
    tier: str = "container"


class ListExpander:
    """Turns a listing page into a ``ListResult``.

    Args:
        fetcher: Fetcher used for each item page.
        extractor: Extractor used for item pages and container summaries.
        config: Selector tables, item cap and inter-item delay.
        sleep: Blocking sleep function; injectable for tests.
        rng: Random source for the inter-item delay.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        extractor: Optional[FieldExtractor] = None,
        config: Optional[ScraperConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or ScraperConfig()
        self.fetcher = fetcher
        self.extractor = extractor or FieldExtractor(self.config)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._excluded = [re.compile(p, re.IGNORECASE) for p in self.config.excluded_link_patterns]

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def discover(self, document: Document, page_class: PageClass, source_url: str) -> List[Candidate]:
        """Find, deduplicate and cap the item candidates on a listing page."""
        soup = BeautifulSoup(document.html, "html.parser")
        base_url = document.url or source_url

        candidates = self._from_containers(soup, page_class, base_url)
        if not candidates:
            logger.info(f"No item containers matched on {source_url}, trying direct link search")
            candidates = self._from_direct_links(soup, base_url)
        if not candidates and page_class is PageClass.STORE:
            logger.info(f"No direct item links on {source_url}, scanning embedded data blocks")
            candidates = self._from_embedded_data(soup, base_url)

        unique: List[Candidate] = []
        seen = set()
        for candidate in candidates:
            if candidate.url in seen:
                continue
            seen.add(candidate.url)
            unique.append(candidate)

        cap = self.config.max_list_items
        if len(unique) > cap:
            logger.info(f"Found {len(unique)} item links, keeping the first {cap}")
        return unique[:cap]

    def _from_containers(self, soup: BeautifulSoup, page_class: PageClass, base_url: str) -> List[Candidate]:
        containers: List[Tag] = []
        for selector in self.config.containers_for(page_class.value):
            containers = soup.select(selector)
            if containers:
                logger.debug(f"Container selector '{selector}' matched {len(containers)} elements")
                break

        candidates = []
        for container in containers:
            url = self._link_in_container(container, base_url)
            if url:
                candidates.append(Candidate(url=url, container=container, tier="container"))
        return candidates

    def _link_in_container(self, container: Tag, base_url: str) -> Optional[str]:
        for selector in self.config.link_selectors:
            for anchor in container.select(selector):
                url = self._accept_link(anchor.get("href"), base_url)
                if url:
                    return url

        # Containers sometimes only carry the identifier
        item_id = container.get("data-asin") or container.get("data-csa-c-item-id")
        if isinstance(item_id, str) and ITEM_ID_RE.match(item_id.strip()):
            return item_url(base_url, item_id.strip())
        return None

    def _from_direct_links(self, soup: BeautifulSoup, base_url: str) -> List[Candidate]:
        candidates = []
        for selector in self.config.direct_link_selectors:
            for anchor in soup.select(selector):
                url = self._accept_link(anchor.get("href"), base_url)
                if url:
                    candidates.append(Candidate(url=url, tier="direct"))
        return candidates

    def _from_embedded_data(self, soup: BeautifulSoup, base_url: str) -> List[Candidate]:
        item_ids: List[str] = []
        for text in iter_script_blocks(soup):
            data = load_json_block(text)
            if data is not None:
                for value in iter_json_values(data, EMBEDDED_ID_KEYS):
                    values = value if isinstance(value, list) else [value]
                    item_ids.extend(v for v in values if isinstance(v, str) and ITEM_ID_RE.match(v))
            for pattern in EMBEDDED_ID_PATTERNS:
                item_ids.extend(pattern.findall(text))

        return [Candidate(url=item_url(base_url, item_id), tier="embedded") for item_id in item_ids]

    def _accept_link(self, href, base_url: str) -> Optional[str]:
        """Resolve a link and keep it only if it points at an item page."""
        if not isinstance(href, str) or not href.strip():
            return None
        if any(pattern.search(href) for pattern in self._excluded):
            return None
        descriptor = classify(absolute_url(base_url, href))
        if descriptor.page_class is not PageClass.PRODUCT:
            return None
        item_id = extract_item_id(descriptor.normalized)
        return item_url(descriptor.normalized, item_id) if item_id else descriptor.normalized

    # -------------------------------------------------------------------------
    # Expansion
    # -------------------------------------------------------------------------

    def expand(self, document: Document, page_class: PageClass, source_url: str) -> ListResult:
        """Scrape every discovered item of a listing page.

        Raises:
            NoItemsFoundError: If no discovery tier yields a single candidate
        """
        candidates = self.discover(document, page_class, source_url)
        if not candidates:
            raise NoItemsFoundError(
                f"No product links found on this {page_class.value} page.",
                url=source_url,
                page_class=page_class.value,
            )

        logger.info(f"Expanding {len(candidates)} items from {page_class.value} page {source_url}")

        items: List[ProductRecord] = []
        provenance: List[Provenance] = []
        for i, candidate in enumerate(candidates, start=1):
            if i > 1:
                self._sleep(
                    self._rng.uniform(self.config.inter_item_delay_min, self.config.inter_item_delay_max)
                )
            logger.info(f"  [{i}/{len(candidates)}] {candidate.url}")
            record, source = self._scrape_item(candidate)
            items.append(record)
            provenance.append(source)

        result = ListResult(
            source_url=source_url,
            page_class=page_class,
            items=tuple(items),
            provenance=tuple(provenance),
        )
        if result.is_partial:
            log_scrape_event(
                ErrorKind.PARTIAL_LIST_FAILURE.value,
                {
                    "url": source_url,
                    "items": len(result),
                    "failed": result.error_count,
                    "success_ratio": result.success_ratio,
                },
                logger_name="list_expander",
            )
        return result

    def _scrape_item(self, candidate: Candidate) -> Tuple[ProductRecord, Provenance]:
        try:
            document = self.fetcher.fetch(candidate.url)
            return self.extractor.extract(document, candidate.url), Provenance.DETAIL_FETCH
        except ScrapeError as e:
            logger.warning(f"    Item failed ({e.kind.value}): {candidate.url} - {e.message}")
            log_scrape_event(
                "list_item_failed",
                {"url": candidate.url, "kind": e.kind.value, "error": e.message, "tier": candidate.tier},
                logger_name="list_expander",
            )
            failure = e
        except Exception as e:
            logger.exception(f"    Unexpected error for {candidate.url}: {e}")
            failure = ScrapeError(kind=ErrorKind.UNCLASSIFIED, url=candidate.url, detail=str(e))
            log_scrape_event(
                "list_item_failed",
                {"url": candidate.url, "kind": failure.kind.value, "error": str(e), "tier": candidate.tier},
                level=logging.ERROR,
                logger_name="list_expander",
            )

        if candidate.container is not None:
            summary = self.extractor.summarize(candidate.container, candidate.url)
            if summary is not None:
                logger.info(f"    Using listing summary for {candidate.url}")
                return summary, Provenance.LIST_SUMMARY

        return (
            ProductRecord(
                url=candidate.url,
                item_id=extract_item_id(candidate.url) or NOT_AVAILABLE,
                error=f"{failure.kind.value}: {failure.message}",
            ),
            Provenance.DETAIL_FETCH,
        )
