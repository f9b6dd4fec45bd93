"""Exception types raised by the scraper."""

from __future__ import annotations


class ConfigError(ValueError):
    """Invalid run configuration, detected before any network activity."""


class ScrapeError(RuntimeError):
    """A network fault that prevents a scrape from starting or completing."""


class MalformedPageError(ScrapeError):
    """A listing response that could not be parsed as a page."""


class ImageFetchError(ScrapeError):
    """A card image could not be fetched or decoded."""
