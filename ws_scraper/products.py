"""Product announcements from the Japanese products index."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from ws_scraper.config import PipelineConfig
from ws_scraper.errors import ScrapeError
from ws_scraper.fetch import RetryPolicy, fetch_with_retry, parse_document
from ws_scraper.pool import ProxyPool

logger = logging.getLogger(__name__)

PRODUCTS_URL = "https://ws-tcg.com/products/page/"

BANNED_PRODUCTS = ("new_title_ws", "resale_news", "bp_renewal")

# "...発売日 / 作品番号：BD,BDW" style line
TITLE_AND_WORK_NUMBER_RE = re.compile(r".*/ .*：([\w,]+)")


@dataclass
class ProductInfo:
    release_date: str
    title: str
    licence_code: str
    image: str
    set_code: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ReleaseDate": self.release_date,
            "Title": self.title,
            "LicenceCode": self.licence_code,
            "Image": self.image,
            "SetCode": self.set_code,
        }


def extract_product_info(doc: BeautifulSoup) -> ProductInfo:
    """Read a product detail page; raises ValueError if its header is unrecognized."""
    release = doc.select_one(".release")
    release_text = release.get_text().strip() if release is not None else ""
    m = TITLE_AND_WORK_NUMBER_RE.search(release_text)
    if m is None:
        raise ValueError(f"string {release_text!r} doesn't match expected format")

    strong = doc.select_one(".release strong")
    release_date = strong.get_text().strip().split("(")[0] if strong is not None else ""

    set_code = ""
    for img in doc.select(".entry-content img"):
        # e.g. ".../ws_bp_W109_01.png" -> "W109"
        parts = posixpath.basename(img.get("src", "")).split("_")
        if len(parts) >= 4:
            set_code = parts[2]

    title = doc.select_one(".entry-content > h3")
    image = doc.select_one(".product-detail .alignright img")
    return ProductInfo(
        release_date=release_date,
        title=title.get_text() if title is not None else "",
        licence_code=m.group(1),
        image=image.get("src", "notfound") if image is not None else "notfound",
        set_code=set_code,
    )


async def fetch_products(
    page: int,
    pool: ProxyPool,
    pipeline_config: Optional[PipelineConfig] = None,
) -> List[ProductInfo]:
    """Scrape every product announced on one page of the products index."""
    policy = RetryPolicy.from_config(pipeline_config or PipelineConfig())
    index_url = f"{PRODUCTS_URL}{page}"
    resp = await fetch_with_retry(pool, index_url, policy)
    if resp is None:
        raise ScrapeError(f"couldn't fetch products page {index_url}")
    index = parse_document(resp.text, index_url)

    products: List[ProductInfo] = []
    for link in index.select(".product-list .show-detail a"):
        detail_url = link.get("href", "")
        if not detail_url or any(ban in detail_url for ban in BANNED_PRODUCTS):
            continue
        logger.info("Extract: %s", detail_url)
        detail = await fetch_with_retry(pool, detail_url, policy)
        if detail is None:
            logger.error("Couldn't fetch product page %s", detail_url)
            continue
        try:
            products.append(extract_product_info(parse_document(detail.text, detail_url)))
        except (ValueError, ScrapeError) as exc:
            logger.error("Error getting product info from %s: %s", detail_url, exc)
    return products


def products_as_dicts(products: List[ProductInfo]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in products]
