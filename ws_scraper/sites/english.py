"""Profile for the English catalog (en.ws-tcg.com).

Result pages only link to per-card detail pages, so scanning a page fetches
every detail page before handing its card fragment to extraction.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from bs4 import BeautifulSoup, Tag

from ws_scraper.cardnumber import sanitize_card_number
from ws_scraper.config import ScrapeConfig
from ws_scraper.errors import MalformedPageError
from ws_scraper.fetch import fetch_with_retry, parse_document
from ws_scraper.icons import extract_abilities, icon_names, icon_stem
from ws_scraper.models import CARD_TYPE_CHARACTER, CARD_TYPE_CLIMAX, CARD_TYPE_EVENT
from ws_scraper.sites import ENGLISH
from ws_scraper.sites.base import ScanContext, absolute_url, rarity_flag, text_of

logger = logging.getLogger(__name__)

# As of 2024-09, the search results show 15 cards per page.
CARDS_PER_PAGE = 15

CARD_TYPES = {
    "Character": CARD_TYPE_CHARACTER,
    "Event": CARD_TYPE_EVENT,
    "Climax": CARD_TYPE_CLIMAX,
}

_EXPANSION_HREF_RE = re.compile(r"expansion=(\d+)")


class EnglishSite:
    language = ENGLISH
    base_url = "https://en.ws-tcg.com/"
    card_list_url = "https://en.ws-tcg.com/cardlist/"
    card_search_url = "https://en.ws-tcg.com/cardlist/searchresults/"
    supports_title_number = True

    def search_form(self, scrape: ScrapeConfig) -> Dict[str, str]:
        form = {"view": "text"}
        if scrape.expansion:
            # "expansion" works too, but the site itself sends "expansion_name"
            form["expansion_name"] = str(scrape.expansion)
        if scrape.title:
            form["title"] = str(scrape.title)
        form["parallel"] = rarity_flag(scrape)
        if scrape.set_codes:
            form["keyword_or"] = " ".join(scrape.set_codes)
            form["keyword_type[]"] = "no"
        return form

    def last_page(self, doc: BeautifulSoup) -> int:
        count = text_of(doc.select_one(".c-search__results-item span"))
        try:
            num_cards = int(count)
        except ValueError:
            logger.error("Couldn't get number of cards from %r", count)
            return 1
        return (num_cards - 1) // CARDS_PER_PAGE + 1

    async def scan_page(self, doc: BeautifulSoup, page_url: str, ctx: ScanContext) -> None:
        results = doc.select(".p_cards__results-box ul li")
        if not results:
            logger.warning("No cards on response page %s", page_url)
            return

        logger.debug("Found %d cards on %s", len(results), page_url)
        for item in results:
            link = item.find("a")
            href = link.get("href") if link is not None else None
            if not href:
                logger.error("Card entry without a detail link on %s", page_url)
                continue
            detail_url = absolute_url(self.base_url, href)

            resp = await fetch_with_retry(ctx.pool, detail_url, ctx.policy, cookies=ctx.cookies)
            if resp is None:
                logger.error("Failed to get detail page %s", detail_url)
                ctx.item_failed(detail_url, "detail page fetch failed")
                continue
            try:
                detail = parse_document(resp.text, detail_url)
            except MalformedPageError as exc:
                logger.error("Couldn't parse detail page: %s", exc)
                ctx.item_failed(detail_url, str(exc))
                continue

            wrapper = detail.select_one(".p-cards__detail-wrapper")
            if wrapper is None:
                logger.error("No card details on %s", detail_url)
                ctx.item_failed(detail_url, "no card details")
                continue
            logger.debug("Parsed detail page %s", detail_url)
            await ctx.emit(wrapper)

    def recent_release_filters(self, doc: BeautifulSoup) -> List[Dict[str, str]]:
        filters: List[Dict[str, str]] = []
        for link in doc.select("div.p-cards__latest-products ul.c-product__list a"):
            m = _EXPANSION_HREF_RE.search(link.get("href", ""))
            if m:
                filters.append({"view": "text", "expansion": m.group(1)})
        return filters

    def extract_fields(self, fragment: Tag, info: Dict[str, Any]) -> None:
        text_areas = fragment.select(".p-cards__detail-textarea")
        text_area = text_areas[-1] if text_areas else fragment
        info["card_number"] = sanitize_card_number(text_of(text_area.select_one(".number")))
        logger.debug("Start card: %s", info["card_number"])

        titles = fragment.select(".ttl")
        info["name"] = text_of(titles[-1]) if titles else ""
        image = fragment.select_one("div.image img")
        if image is not None and image.get("src"):
            info["image_url"] = absolute_url(self.base_url, image["src"])

        for entry in fragment.select("dl"):
            label = text_of(entry.find("dt"))
            dd = entry.find("dd")
            if dd is None:
                continue
            value = dd.get_text().strip()
            self._read_detail(label, value, dd, info)

        info["flavor_text"] = text_of(text_area.select_one(".p-cards__detail-serif"))

        abilities = fragment.select(".p-cards__detail p")
        info["text"] = extract_abilities(abilities[-1] if abilities else None)

    def _read_detail(self, label: str, value: str, dd: Tag, info: Dict[str, Any]) -> None:
        if label == "Card Type":
            info["card_type"] = CARD_TYPES.get(value, "")
        elif label == "Color":
            self._read_icon(dd, "color", info)
        elif label == "Side":
            self._read_icon(dd, "side", info)
        elif label == "Cost":
            info["cost"] = value
        elif label == "Expansion":
            info["expansion_name"] = value
        elif label == "Level":
            info["level"] = value
        elif label == "Power":
            info["power"] = value
        elif label == "Rarity":
            info["rarity"] = value
        elif label == "Soul":
            icons = dd.find_all("img")
            info["soul"] = str(len(icons)) if icons else value
        elif label == "Traits":
            info["traits"] = value
        elif label == "Trigger":
            info["triggers"] = icon_names(dd)
        else:
            logger.error("Unknown detail %r on card %s", label, info.get("card_number"))

    @staticmethod
    def _read_icon(dd: Tag, key: str, info: Dict[str, Any]) -> None:
        img = dd.find("img")
        if img is None or not img.get("src"):
            logger.error("Failed to get %s of card %s", key, info.get("card_number"))
            return
        info[key] = icon_stem(img["src"]).upper()
