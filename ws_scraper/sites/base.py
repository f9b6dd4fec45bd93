"""Site profile protocol and helpers shared by the EN and JP profiles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Protocol, runtime_checkable
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag

from ws_scraper.config import ScrapeConfig
from ws_scraper.fetch import RetryPolicy
from ws_scraper.pool import ProxyPool


@dataclass
class ScanContext:
    """What a listing scan may use: the pool, the task's cookies, and sinks."""

    pool: ProxyPool
    policy: RetryPolicy
    cookies: httpx.Cookies
    emit: Callable[[Tag], Awaitable[None]]  # hand a card fragment to extraction
    item_failed: Callable[[str, str], None]  # (url, reason) for a lost item


@runtime_checkable
class SiteProfile(Protocol):
    """Parsing and pagination rules for one language's catalog site."""

    language: str
    base_url: str
    card_list_url: str
    card_search_url: str
    supports_title_number: bool

    def search_form(self, scrape: ScrapeConfig) -> Dict[str, str]:
        """Form values for the card search, with the run's filters applied."""
        ...

    def last_page(self, doc: BeautifulSoup) -> int:
        """Number of result pages, read from the first result page."""
        ...

    async def scan_page(self, doc: BeautifulSoup, page_url: str, ctx: ScanContext) -> None:
        """Emit one fragment per card listed on a result page."""
        ...

    def recent_release_filters(self, doc: BeautifulSoup) -> List[Dict[str, str]]:
        """Search forms for each recent release advertised on the card list page."""
        ...

    def extract_fields(self, fragment: Tag, info: Dict[str, Any]) -> None:
        """Fill ``info`` with Card field values read from a card fragment."""
        ...


def page_url(search_url: str, page: int) -> str:
    return f"{search_url}?page={page}"


def absolute_url(base_url: str, path: str) -> str:
    return urljoin(base_url, path)


def rarity_flag(scrape: ScrapeConfig) -> str:
    """The sites' "parallel" value: "0" lists every rarity, "1" base prints only."""
    return "0" if scrape.all_rarities else "1"


def text_of(node: Any) -> str:
    """Stripped text of a node, or "" when the node is missing."""
    if node is None:
        return ""
    return node.get_text().strip()
