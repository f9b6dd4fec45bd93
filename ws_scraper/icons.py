"""Icon translation: trigger, color and side markers are images on both sites."""

from __future__ import annotations

import copy
import html
import logging
import posixpath
from typing import Dict, List, Optional
from urllib.parse import urlparse

from bs4 import Tag

logger = logging.getLogger(__name__)

TRIGGER_ICONS: Dict[str, str] = {
    "soul": "SOUL",
    "salvage": "COMEBACK",
    "draw": "DRAW",
    "stock": "POOL",
    "treasure": "TREASURE",
    "shot": "SHOT",
    "bounce": "RETURN",
    "gate": "GATE",
    "standby": "STANDBY",
    "choice": "CHOICE",
}

LINE_BREAK = "<br/>"


def icon_stem(url: Optional[str]) -> str:
    """Return the filename stem of an icon URL ("/x/_partimages/soul.gif" -> "soul")."""
    if not url:
        return ""
    name = posixpath.basename(urlparse(url).path)
    return name.split(".")[0]


def translate_icon(url: Optional[str]) -> str:
    """Map an icon URL to its symbolic name; unknown icons map to ""."""
    return TRIGGER_ICONS.get(icon_stem(url), "")


def icon_names(node: Tag) -> List[str]:
    """Symbolic names of the icon images directly under ``node``, in document order."""
    names = [translate_icon(img.get("src")) for img in node.find_all("img", recursive=False)]
    return " ".join(names).split()


def extract_abilities(node: Optional[Tag]) -> List[str]:
    """Split an ability text block into lines, with inline icons as "[NAME]" tokens.

    Works on a copy so the parsed document is left untouched.
    """
    if node is None:
        return []
    node = copy.copy(node)
    for img in node.find_all("img"):
        src = img.get("src")
        if src is None:
            continue
        img.replace_with(f"[{translate_icon(src)}]")

    abilities: List[str] = []
    for line in node.decode_contents().split(LINE_BREAK):
        line = line.strip()
        if not line:
            continue
        abilities.append(html.unescape(line))
    return abilities
