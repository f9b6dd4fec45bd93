"""Writes scraped cards, boosters and product lists as JSON files."""

from __future__ import annotations

import json
import logging
import posixpath
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ws_scraper.models import Booster, Card
from ws_scraper.sites import language_tag

logger = logging.getLogger(__name__)


def write_json(path: Path, data: Any) -> None:
    """Write ``data`` to a JSON file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(data, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


class CardWriter:
    """One JSON file per card, laid out as <en|ja>/<setId>/<release>/."""

    def __init__(self, card_dir: str, language: str, force: bool = False) -> None:
        self._root = Path(card_dir) / language_tag(language)
        self._force = force
        self.written = 0
        self.skipped = 0

    def card_path(self, card: Card) -> Path:
        name = f"{card.set_id}-{card.release}-{card.sequence_id}.json"
        return self._root / card.set_id / card.release / name

    def write(self, card: Card) -> Optional[Path]:
        """Write a card (and its image, if attached); returns None when skipped."""
        path = self.card_path(card)
        if path.exists() and not self._force:
            logger.info("Skipping card (file exists): %s", path.name)
            self.skipped += 1
            return None

        write_json(path, card.to_dict())
        self.written += 1
        logger.info("Finished card: %s", path.name)

        if card.image is not None and card.image_url:
            self._write_image(card, path.parent / "assets")
        return path

    def _write_image(self, card: Card, asset_dir: Path) -> None:
        image_name = posixpath.basename(urlparse(card.image_url).path)
        if not image_name:
            logger.error("No file name in image URL %s", card.image_url)
            return
        dest = asset_dir / image_name
        if dest.exists() and not self._force:
            logger.info("Skipping image (file exists): %s", image_name)
            return
        asset_dir.mkdir(parents=True, exist_ok=True)
        try:
            card.image.save(dest)
        except (OSError, ValueError) as exc:
            logger.error("Error saving image %s: %s", image_name, exc)
            return
        logger.info("Saved image: %s", image_name)


def write_boosters(booster_dir: str, language: str, boosters: Dict[str, Booster]) -> List[Path]:
    """Write one <release>.json per booster holding its cards."""
    paths: List[Path] = []
    for code, booster in boosters.items():
        logger.info("Writing booster: %s", code)
        path = Path(booster_dir) / language_tag(language) / f"{code}.json"
        write_json(path, [card.to_dict() for card in booster.cards])
        paths.append(path)
    return paths
