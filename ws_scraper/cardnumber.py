"""Card number parser.

Both sites print a card number such as:
  "BD/W63-036SPMa"
  "FS/BCS2019-03"
  "TSK/S82-E070SSP%2B"

This module sanitizes the raw string and splits it into set id, release,
release pack id and the sequence id within the release.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# <setID>/<release>-<id>, where release may contain hyphens and id may end in "+"
STANDARD_CARD_NUMBER_RE = re.compile(
    r"(?P<set_id>[a-zA-Z0-9]+)/(?P<release>[a-zA-Z0-9-]+)-(?P<id>[a-zA-Z0-9]+\+?)$"
)

# Leading alphabetic/hyphen code followed by the numeric pack id
RELEASE_RE = re.compile(r"(?P<code>[a-zA-Z-]*)(?P<pack_id>[0-9]+)")


@dataclass(frozen=True)
class CardNumberParts:
    """Parsed components of a card number. Missing segments are empty."""

    set_id: str = ""
    release: str = ""
    release_pack_id: str = ""
    sequence_id: str = ""


def sanitize_card_number(card_number: str) -> str:
    """Undo the sites' known card number misprints.

    The sites sometimes show "%2B" instead of "+" (e.g. SSP+ rarity), and
    sometimes inline a "+" that belongs elsewhere (e.g. "RWBY/BRO2021-01+PR").
    Every "+" except a trailing one becomes a space.
    """
    cn = card_number.replace("%2B", "+")
    plus_count = cn.count("+")
    if plus_count:
        if cn.endswith("+"):
            plus_count -= 1
        cn = cn.replace("+", " ", plus_count)
    return cn


def parse_release(release: str) -> str:
    """Return the pack id of a release code ("W63" -> "63", "BSL2021" -> "2021").

    Returns an empty string when the release has no trailing digits.
    """
    m = RELEASE_RE.fullmatch(release)
    return m.group("pack_id") if m else ""


def parse_card_number(card_number: str) -> CardNumberParts:
    """Split a sanitized card number into its components.

    The strict pattern always wins when it matches. Otherwise the number is
    split on its first "/" and then its first "-"; without any "/" nothing
    can be derived and every component is empty.

    Args:
        card_number: Card number, already passed through sanitize_card_number.

    Returns:
        CardNumberParts; never raises.
    """
    m = STANDARD_CARD_NUMBER_RE.search(card_number)
    if m:
        release = m.group("release")
        return CardNumberParts(
            set_id=m.group("set_id"),
            release=release,
            release_pack_id=parse_release(release),
            sequence_id=m.group("id"),
        )

    if "/" not in card_number:
        logger.error("Can't get set info from card number %r", card_number)
        return CardNumberParts()

    set_id, rest = card_number.split("/", 1)
    if "-" not in rest:
        return CardNumberParts(set_id=set_id)

    release, sequence_id = rest.split("-", 1)
    return CardNumberParts(
        set_id=set_id,
        release=release,
        release_pack_id=parse_release(release),
        sequence_id=sequence_id,
    )
