"""Card and booster data models.

Cards are built once by the extraction stage and never mutated afterwards;
attaching a decoded image produces a new Card via ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Card format version, bumped whenever the serialized shape changes.
CARD_MODEL_VERSION = "1"

CARD_TYPE_CHARACTER = "CH"
CARD_TYPE_EVENT = "EV"
CARD_TYPE_CLIMAX = "CX"

FOIL_SUFFIXES = ("SP", "S", "R")

BASE_RARITIES = frozenset({
    "C", "CC", "CR", "FR", "MR", "PR", "PS",
    "R", "RE", "RR", "RR+", "TD", "U", "AR",
})


@dataclass(frozen=True)
class Card:
    """Normalized catalog entry for a single printed card."""

    card_number: str  # as printed, after sanitization
    language: str  # "EN" or "JP"
    set_id: str = ""  # before the "/" (e.g. "BD")
    release: str = ""  # side + pack id (e.g. "W63"), or a promo code like "BSF2024"
    release_pack_id: str = ""  # trailing digits of the release, may be empty
    sequence_id: str = ""  # after the "-" (e.g. "036SPMa")
    name: str = ""
    card_type: str = ""  # "CH", "EV" or "CX"
    color: str = ""
    side: str = ""  # "W" or "S"
    rarity: str = ""
    expansion_name: str = ""
    set_name: str = ""  # JP only
    flavor_text: str = ""
    image_url: str = ""
    level: str = ""
    cost: str = ""
    power: str = ""
    soul: str = ""
    traits: Optional[List[str]] = None
    triggers: Optional[List[str]] = None
    text: Optional[List[str]] = None
    version: str = CARD_MODEL_VERSION
    image: Optional[Any] = field(default=None, compare=False, repr=False)  # PIL.Image.Image

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON shape consumed downstream."""
        return {
            "cardNumber": self.card_number,
            "setId": self.set_id,
            "setName": self.set_name,
            "expansionName": self.expansion_name,
            "side": self.side,
            "release": self.release,
            "releasePackId": self.release_pack_id,
            "id": self.sequence_id,
            "language": self.language,
            "type": self.card_type,
            "name": self.name,
            "color": self.color,
            "cost": self.cost,
            "level": self.level,
            "power": self.power,
            "soul": self.soul,
            "text": self.text,
            "traits": self.traits,
            "triggers": self.triggers,
            "flavorText": self.flavor_text,
            "imageURL": self.image_url,
            "rarity": self.rarity,
            "version": self.version,
        }


@dataclass
class Booster:
    """Cards sharing a release code, in arrival order."""

    release_code: str
    cards: List[Card] = field(default_factory=list)


def is_base_rarity(card: Card) -> bool:
    """Check if a card is a plain (non-foil) C / U / R / RR style print."""
    if card.rarity not in BASE_RARITIES:
        return False
    return not card.sequence_id.endswith(FOIL_SUFFIXES)
