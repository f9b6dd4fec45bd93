"""Site profile registry."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Dict

from ws_scraper.errors import ConfigError

if TYPE_CHECKING:
    from ws_scraper.sites.base import SiteProfile

ENGLISH = "EN"
JAPANESE = "JP"

# Lazy-loaded site registry: language -> module.ClassName
_SITE_REGISTRY: Dict[str, str] = {
    ENGLISH: "ws_scraper.sites.english.EnglishSite",
    JAPANESE: "ws_scraper.sites.japanese.JapaneseSite",
}

_LANGUAGE_ALIASES: Dict[str, str] = {
    "en": ENGLISH,
    "ja": JAPANESE,
    "jp": JAPANESE,
}

# Lowercase tags used for on-disk output directories.
LANGUAGE_TAGS: Dict[str, str] = {
    ENGLISH: "en",
    JAPANESE: "ja",
}


def normalize_language(language: str) -> str:
    """Map a user-supplied language ("en", "ja", "JP", ...) to a registry key."""
    code = language.strip()
    return _LANGUAGE_ALIASES.get(code.lower(), code.upper())


def known_languages() -> set[str]:
    """Return the set of supported language codes."""
    return set(_SITE_REGISTRY.keys())


def get_site(language: str) -> "SiteProfile":
    """Import and instantiate the site profile for a language."""
    qualified = _SITE_REGISTRY.get(normalize_language(language))
    if qualified is None:
        raise ConfigError(
            f"Unsupported language '{language}'. Available: {sorted(_SITE_REGISTRY)}"
        )
    module_path, class_name = qualified.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)()


def language_tag(language: str) -> str:
    """Return the output directory tag ("en", "ja") for a language."""
    code = normalize_language(language)
    if code not in LANGUAGE_TAGS:
        raise ConfigError(f"Unsupported language '{language}'. Available: {sorted(LANGUAGE_TAGS)}")
    return LANGUAGE_TAGS[code]
