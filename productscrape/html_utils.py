"""HTML parsing helpers and the first-match-wins rule combinator.

A fallback chain is a sequence of ``Rule`` objects. Each rule pairs a
*matcher* (find something in the page) with an *extractor* (turn the match
into a raw string). ``first_match`` walks the chain in order and returns the
first value that survives normalization and validation.
"""

import html as html_lib
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Tag

__all__ = [
    "Page",
    "Rule",
    "first_match",
    "collapse_whitespace",
    "clean_text",
    "select_text",
    "select_attr",
    "meta_content",
    "regex",
    "iter_script_blocks",
    "iter_json_values",
    "load_json_block",
]


@dataclass(frozen=True)
class Page:
    """Parsed view of a document or of a single listing container.

    ``soup`` may be a full ``BeautifulSoup`` tree or one ``Tag``; ``text``
    is the raw markup the regex rules run against.
    """

    soup: Union[BeautifulSoup, Tag]
    text: str
    url: str = ""

    @classmethod
    def parse(cls, markup: str, url: str = "") -> "Page":
        return cls(soup=BeautifulSoup(markup, "html.parser"), text=markup, url=url)

    @classmethod
    def from_tag(cls, tag: Tag, url: str = "") -> "Page":
        return cls(soup=tag, text=str(tag), url=url)


Matcher = Callable[[Page], Any]
Extractor = Callable[[Any], Optional[str]]


@dataclass(frozen=True)
class Rule:
    """One step of a fallback chain."""

    name: str
    matcher: Matcher
    extractor: Extractor

    def apply(self, page: Page) -> Optional[str]:
        match = self.matcher(page)
        if match is None:
            return None
        return self.extractor(match)


def first_match(
    rules: Iterable[Rule],
    page: Page,
    normalize: Optional[Callable[[str], Optional[str]]] = None,
) -> Optional[Tuple[str, str]]:
    """Evaluate rules left to right and return ``(value, rule_name)`` of the first hit.

    ``normalize`` both cleans and validates: returning ``None`` or an empty
    string rejects the candidate and moves on to the next rule.
    """
    for rule in rules:
        raw = rule.apply(page)
        if not raw:
            continue
        value = normalize(raw) if normalize else raw
        if value:
            return value, rule.name
    return None


# =============================================================================
# Text Helpers
# =============================================================================

def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clean_text(text: Optional[str]) -> str:
    """Unescape HTML entities and collapse whitespace."""
    if not text:
        return ""
    return collapse_whitespace(html_lib.unescape(text))


# =============================================================================
# Rule Builders
# =============================================================================

def _select_all(page: Page, selector: str) -> List[Tag]:
    return page.soup.select(selector)


def select_text(selector: str, name: Optional[str] = None) -> Rule:
    """First element matching ``selector`` that has non-empty text."""

    def matcher(page: Page) -> Optional[Tag]:
        for element in _select_all(page, selector):
            if element.get_text(strip=True):
                return element
        return None

    return Rule(
        name=name or selector,
        matcher=matcher,
        extractor=lambda element: element.get_text(" ", strip=True),
    )


def select_attr(selector: str, attr: str, name: Optional[str] = None) -> Rule:
    """Attribute ``attr`` of the first element matching ``selector`` that carries it."""

    def matcher(page: Page) -> Optional[str]:
        for element in _select_all(page, selector):
            value = element.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            if value and value.strip():
                return value
        return None

    return Rule(name=name or f"{selector}[{attr}]", matcher=matcher, extractor=lambda v: v)


def meta_content(prop: str) -> Rule:
    """``content`` of ``<meta property=...>`` or ``<meta name=...>``."""
    return select_attr(
        f'meta[property="{prop}"], meta[name="{prop}"]', "content", name=f"meta:{prop}"
    )


def regex(pattern: str, group: int = 1, flags: int = re.IGNORECASE, name: Optional[str] = None) -> Rule:
    """Regular expression over the raw markup."""
    compiled = re.compile(pattern, flags)

    return Rule(
        name=name or f"re:{pattern}",
        matcher=lambda page: compiled.search(page.text),
        extractor=lambda match: match.group(group),
    )


# =============================================================================
# Embedded Data Blocks
# =============================================================================

def iter_script_blocks(soup: Union[BeautifulSoup, Tag]) -> Iterator[str]:
    """Yield the text of every non-empty <script> element."""
    for script in soup.find_all("script"):
        text = script.string or script.get_text()
        if text and text.strip():
            yield text


def iter_json_values(data: Any, keys: Sequence[str]) -> Iterator[Any]:
    """Recursively yield values stored under any of ``keys`` in parsed JSON."""
    if isinstance(data, dict):
        for key, value in data.items():
            if key in keys:
                yield value
            yield from iter_json_values(value, keys)
    elif isinstance(data, list):
        for item in data:
            yield from iter_json_values(item, keys)


def load_json_block(text: str) -> Optional[Any]:
    """Parse a script body as JSON, or return None if it is not JSON."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
