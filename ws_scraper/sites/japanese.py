"""Profile for the Japanese catalog (ws-tcg.com).

Result pages embed every card's full markup as a table row, so scanning
needs no further requests.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from bs4 import BeautifulSoup, Tag

from ws_scraper.cardnumber import sanitize_card_number
from ws_scraper.config import ScrapeConfig
from ws_scraper.icons import extract_abilities, icon_names, icon_stem
from ws_scraper.models import CARD_TYPE_CHARACTER, CARD_TYPE_CLIMAX, CARD_TYPE_EVENT
from ws_scraper.sites import JAPANESE
from ws_scraper.sites.base import ScanContext, absolute_url, rarity_flag, text_of

logger = logging.getLogger(__name__)

CARD_TYPES = {
    "キャラ": CARD_TYPE_CHARACTER,
    "イベント": CARD_TYPE_EVENT,
    "クライマックス": CARD_TYPE_CLIMAX,
}

# ".unit" label prefixes, in the order the site prints them
SIDE = "サイド："
TYPE = "種類："
LEVEL = "レベル："
COLOR = "色："
POWER = "パワー："
SOUL = "ソウル："
COST = "コスト："
RARITY = "レアリティ："
TRIGGER = "トリガー："
TRAITS = "特徴："
FLAVOR = "フレーバー："


class JapaneseSite:
    language = JAPANESE
    base_url = "https://ws-tcg.com/"
    card_list_url = "https://ws-tcg.com/cardlist/"
    card_search_url = "https://ws-tcg.com/cardlist/search"
    supports_title_number = False

    def search_form(self, scrape: ScrapeConfig) -> Dict[str, str]:
        form = {
            "cmd": "search",
            "show_page_count": "100",
            "show_small": "0",
        }
        if scrape.expansion:
            form["expansion"] = str(scrape.expansion)
        form["parallel"] = rarity_flag(scrape)
        if scrape.set_codes:
            form["title_number"] = "##{}##".format("##".join(scrape.set_codes))
        return form

    def last_page(self, doc: BeautifulSoup) -> int:
        # No ".pager .next" when there is a single page
        nxt = doc.select_one(".pager .next")
        if nxt is None:
            return 1
        prev = nxt.find_previous_sibling()
        try:
            last = int(prev.get_text().strip()) if prev is not None else 0
        except ValueError:
            last = 0
        return last or 1

    async def scan_page(self, doc: BeautifulSoup, page_url: str, ctx: ScanContext) -> None:
        rows = doc.select(".search-result-table tr")
        if not rows:
            logger.warning("No cards on response page %s", page_url)
            return
        logger.debug("Found %d cards on %s", len(rows), page_url)
        for row in rows:
            await ctx.emit(row)

    def recent_release_filters(self, doc: BeautifulSoup) -> List[Dict[str, str]]:
        filters: List[Dict[str, str]] = []
        for link in doc.select("div.system > ul.expansion-list a[onclick]"):
            # onclick="...('440')"
            parts = link["onclick"].split("('", 1)
            if len(parts) < 2:
                continue
            expansion = parts[1].rstrip(";").removesuffix("')")
            filters.append({
                "cmd": "search",
                "show_page_count": "100",
                "show_small": "0",
                "parallel": "0",
                "expansion": expansion,
            })
        return filters

    def extract_fields(self, fragment: Tag, info: Dict[str, Any]) -> None:
        title_spans = fragment.select("h4 span")
        info["card_number"] = sanitize_card_number(text_of(title_spans[-1]) if title_spans else "")
        logger.debug("Start card: %s", info["card_number"])
        info["name"] = text_of(title_spans[0]) if title_spans else ""

        image = fragment.select_one("a img")
        if image is not None and image.get("src"):
            info["image_url"] = absolute_url(self.base_url, image["src"])

        spans = fragment.select("span")
        info["text"] = extract_abilities(spans[-1] if spans else None)

        for unit in fragment.select(".unit"):
            self._read_unit(unit, info)

        # "<name>(<number>) -<set name>"
        info["set_name"] = text_of(fragment.find("h4")).split(") -", 1)[1].strip()

    def _read_unit(self, unit: Tag, info: Dict[str, Any]) -> None:
        txt = unit.get_text().strip()
        if txt.startswith(COLOR):
            info["color"] = icon_stem(_first_img_src(unit)).upper()
        elif txt.startswith(TYPE):
            info["card_type"] = CARD_TYPES.get(txt[len(TYPE):].strip(), "")
        elif txt.startswith(COST):
            info["cost"] = txt[len(COST):].strip()
        elif txt.startswith(FLAVOR):
            info["flavor_text"] = txt[len(FLAVOR):].strip()
        elif txt.startswith(LEVEL):
            info["level"] = txt[len(LEVEL):].strip()
        elif txt.startswith(POWER):
            info["power"] = txt[len(POWER):].strip()
        elif txt.startswith(RARITY):
            info["rarity"] = txt[len(RARITY):].strip()
        elif txt.startswith(SIDE):
            info["side"] = icon_stem(_first_img_src(unit)).upper()
        elif txt.startswith(SOUL):
            icons = unit.find_all("img")
            info["soul"] = str(len(icons)) if icons else txt[len(SOUL):].strip()
        elif txt.startswith(TRIGGER):
            info["triggers"] = icon_names(unit)
        elif txt.startswith(TRAITS):
            traits = "".join(child.get_text().strip() for child in unit.find_all(recursive=False))
            info["traits"] = "" if "-" in traits else traits
        else:
            logger.error("Unknown detail %r on card %s", txt, info.get("card_number"))


def _first_img_src(unit: Tag) -> str:
    img = unit.find("img")
    return img.get("src", "") if img is not None else ""
