"""Extraction stage: one card fragment in, one Card out.

Site profiles read raw field values into a plain dict; ``assemble_card``
normalizes them into a Card. A fault while reading fields never escapes:
the card is assembled from whatever was read before the fault.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bs4 import Tag

from ws_scraper.cardnumber import parse_card_number
from ws_scraper.models import CARD_TYPE_CHARACTER, Card
from ws_scraper.sites.base import SiteProfile

logger = logging.getLogger(__name__)

# The sites print a dash when a field does not apply. Never read it as zero.
DASH_PLACEHOLDERS = frozenset({"-", "－"})

TRAIT_SEPARATOR = "・"


@dataclass(frozen=True)
class ExtractResult:
    """A Card plus the fault that cut its extraction short, if any."""

    card: Card
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def filter_dash(value: str) -> str:
    """Return "" for the dash placeholder, the stripped value otherwise."""
    value = value.strip()
    if value in DASH_PLACEHOLDERS:
        return ""
    return value


def split_traits(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    return [t.strip() for t in raw.split(TRAIT_SEPARATOR) if t.strip()]


def assemble_card(info: Dict[str, Any], language: str) -> Card:
    """Build a Card from raw field values."""
    card_number = info.get("card_number", "")
    parts = parse_card_number(card_number) if card_number else None
    card_type = info.get("card_type", "")
    is_character = card_type == CARD_TYPE_CHARACTER

    triggers = info.get("triggers")
    return Card(
        card_number=card_number,
        language=language,
        set_id=parts.set_id if parts else "",
        release=parts.release if parts else "",
        release_pack_id=parts.release_pack_id if parts else "",
        sequence_id=parts.sequence_id if parts else "",
        name=info.get("name", ""),
        card_type=card_type,
        color=info.get("color", ""),
        side=info.get("side", ""),
        rarity=info.get("rarity", ""),
        expansion_name=info.get("expansion_name", ""),
        set_name=info.get("set_name", ""),
        flavor_text=filter_dash(info.get("flavor_text", "")),
        image_url=info.get("image_url", ""),
        level=filter_dash(info.get("level", "")),
        cost=filter_dash(info.get("cost", "")),
        power=filter_dash(info.get("power", "")) if is_character else "",
        soul=filter_dash(info.get("soul", "")) if is_character else "",
        traits=split_traits(info.get("traits")),
        triggers=list(triggers) if triggers is not None else None,
        text=info.get("text"),
    )


def extract_card(site: SiteProfile, fragment: Tag) -> ExtractResult:
    """Convert one card fragment into a Card; never raises."""
    info: Dict[str, Any] = {}
    error: Optional[Exception] = None
    try:
        site.extract_fields(fragment, info)
    except Exception as exc:
        logger.error(
            "Error during card extraction for %s: %s",
            info.get("card_number", "?"),
            exc,
            exc_info=True,
        )
        error = exc
    return ExtractResult(card=assemble_card(info, site.language), error=error)
