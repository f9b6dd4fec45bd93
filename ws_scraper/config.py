"""YAML configuration loader and validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ws_scraper.errors import ConfigError
from ws_scraper.sites import get_site, known_languages, normalize_language

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

EXPORT_MODES = ("card", "booster")


@dataclass
class ScrapeConfig:
    """What to scrape."""

    language: str = "JP"
    # The site's internal expansion code. Codes differ between sites, e.g.
    # 159 is "BanG Dream! Girls Band Party Premium Booster" on EN and
    # "Monogatari Series: Second Season" on JP.
    expansion: int = 0
    title: int = 0  # EN only
    set_codes: List[str] = field(default_factory=list)
    all_rarities: bool = True
    recent: bool = False
    page_start: int = 0
    reverse: bool = False
    images: bool = False


@dataclass
class PipelineConfig:
    """Worker pool sizes and request pacing."""

    max_scrape_workers: int = 5
    max_local_workers: int = 10
    min_request_interval_ms: int = 500
    max_retries: int = 3
    backoff_base_ms: int = 1000
    max_page_attempts: int = 10  # 0 retries a failing page forever


@dataclass
class PoolConfig:
    """HTTP client pool settings."""

    proxies: List[str] = field(default_factory=list)
    timeout_s: float = 25.0
    ban_cooldown_s: float = 60.0
    verify_tls: bool = True
    user_agent: str = "ws-scraper/1.0"


@dataclass
class OutputConfig:
    """Output directories and format settings."""

    card_dir: str = "cards"
    booster_dir: str = "boosters"
    export: str = "card"
    force: bool = False


@dataclass
class AppConfig:
    """Top-level application configuration."""

    scrape: ScrapeConfig = field(default_factory=ScrapeConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(
    path: Optional[Path] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> AppConfig:
    """Load configuration from a YAML file, falling back to defaults.

    ``overrides`` holds per-section values (e.g. from CLI flags) applied on
    top of the file; ``None`` values are ignored.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        logger.info("No config file at %s, using defaults", config_path)
        raw: Dict[str, Any] = {}
    else:
        logger.info("Loading config from %s", config_path)
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    for section, values in (overrides or {}).items():
        merged = dict(raw.get(section) or {})
        merged.update({k: v for k, v in values.items() if v is not None})
        raw[section] = merged

    config = _parse_config(raw)
    validate_config(config)
    return config


def _parse_config(raw: Dict[str, Any]) -> AppConfig:
    """Parse raw YAML dict into AppConfig."""
    config = AppConfig()

    if "scrape" in raw:
        scr = raw["scrape"]
        set_codes = scr.get("set_codes", [])
        if isinstance(set_codes, str):
            set_codes = [s.strip() for s in set_codes.split("##") if s.strip()]
        config.scrape = ScrapeConfig(
            language=str(scr.get("language", config.scrape.language)),
            expansion=int(scr.get("expansion", 0)),
            title=int(scr.get("title", 0)),
            set_codes=list(set_codes),
            all_rarities=bool(scr.get("all_rarities", True)),
            recent=bool(scr.get("recent", False)),
            page_start=int(scr.get("page_start", 0)),
            reverse=bool(scr.get("reverse", False)),
            images=bool(scr.get("images", False)),
        )

    if "pipeline" in raw:
        pl = raw["pipeline"]
        defaults = PipelineConfig()
        config.pipeline = PipelineConfig(
            max_scrape_workers=int(pl.get("max_scrape_workers", defaults.max_scrape_workers)),
            max_local_workers=int(pl.get("max_local_workers", defaults.max_local_workers)),
            min_request_interval_ms=int(
                pl.get("min_request_interval_ms", defaults.min_request_interval_ms)
            ),
            max_retries=int(pl.get("max_retries", defaults.max_retries)),
            backoff_base_ms=int(pl.get("backoff_base_ms", defaults.backoff_base_ms)),
            max_page_attempts=int(pl.get("max_page_attempts", defaults.max_page_attempts)),
        )

    if "pool" in raw:
        pc = raw["pool"]
        defaults = PoolConfig()
        config.pool = PoolConfig(
            proxies=list(pc.get("proxies") or []),
            timeout_s=float(pc.get("timeout_s", defaults.timeout_s)),
            ban_cooldown_s=float(pc.get("ban_cooldown_s", defaults.ban_cooldown_s)),
            verify_tls=bool(pc.get("verify_tls", defaults.verify_tls)),
            user_agent=str(pc.get("user_agent", defaults.user_agent)),
        )

    if "output" in raw:
        out = raw["output"]
        config.output = OutputConfig(
            card_dir=str(out.get("card_dir", config.output.card_dir)),
            booster_dir=str(out.get("booster_dir", config.output.booster_dir)),
            export=str(out.get("export", config.output.export)),
            force=bool(out.get("force", False)),
        )

    return config


def validate_scrape_config(scrape: ScrapeConfig) -> None:
    """Validate the run configuration; normalizes the language code in place."""
    language = normalize_language(scrape.language)
    if language not in known_languages():
        raise ConfigError(
            f"Config error: unsupported language '{scrape.language}'. "
            f"Known: {sorted(known_languages())}"
        )
    scrape.language = language

    site = get_site(language)
    if scrape.title and not site.supports_title_number:
        raise ConfigError(f"Config error: can't use title number on {language} site")
    if scrape.page_start < 0:
        raise ConfigError("Config error: page_start must not be negative")


def validate_pipeline_config(pipeline: PipelineConfig) -> None:
    if pipeline.max_scrape_workers < 1 or pipeline.max_local_workers < 1:
        raise ConfigError("Config error: worker counts must be at least 1")
    if pipeline.max_retries < 1:
        raise ConfigError("Config error: max_retries must be at least 1")
    if pipeline.max_page_attempts < 0:
        raise ConfigError("Config error: max_page_attempts must not be negative")


def validate_config(config: AppConfig) -> None:
    """Validate config and raise ConfigError on errors."""
    validate_scrape_config(config.scrape)
    validate_pipeline_config(config.pipeline)

    if config.output.export not in EXPORT_MODES:
        raise ConfigError(
            f"Config error: unknown export mode '{config.output.export}'. "
            f"Known: {list(EXPORT_MODES)}"
        )

    logger.info(
        "Config validated: language=%s, %d proxies, export=%s",
        config.scrape.language,
        len(config.pool.proxies),
        config.output.export,
    )
