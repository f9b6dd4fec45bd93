"""Expansion code -> display name map, read from the card list's dropdown."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from ws_scraper.config import PoolConfig
from ws_scraper.errors import ScrapeError
from ws_scraper.fetch import parse_document
from ws_scraper.pool import ProxyPool, build_pool
from ws_scraper.sites import get_site

logger = logging.getLogger(__name__)


async def expansion_list(
    language: str,
    pool: Optional[ProxyPool] = None,
    pool_config: Optional[PoolConfig] = None,
) -> Dict[int, str]:
    """Return the expansion numbers and titles offered by a site."""
    site = get_site(language)
    logger.info("Fetching %s expansion list", site.language)

    owned = pool is None
    pool = pool or build_pool(pool_config)
    try:
        client = pool.get_client()
        try:
            resp = await client.post_form(site.card_list_url, {}, cookies=httpx.Cookies())
        except httpx.HTTPError as exc:
            client.ban()
            raise ScrapeError(f"couldn't read page {site.card_list_url}: {exc}") from exc
        if resp.status_code != httpx.codes.OK:
            client.ban()
            raise ScrapeError(f"unexpected status code: {resp.status_code}")
        client.readd()
    finally:
        if owned:
            await pool.close()

    doc = parse_document(resp.text, site.card_list_url)
    options = doc.select("select#expansion option")
    if not options:
        raise ScrapeError("couldn't find expansion list")

    expansions: Dict[int, str] = {}
    for option in options:
        value = option.get("value", "").strip()
        if not value:
            # Probably the "All" option
            logger.warning("Option %r had no value", option.get_text())
            continue
        try:
            expansions[int(value)] = option.get_text()
        except ValueError:
            logger.error("Error parsing expansion value %r", value)
    return expansions
