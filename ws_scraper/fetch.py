"""Request policy shared by every network call: retries, backoff and pacing."""

from __future__ import annotations

import asyncio
import io
import logging
import random
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional

import httpx
from bs4 import BeautifulSoup
from PIL import Image

from ws_scraper.config import PipelineConfig
from ws_scraper.errors import ImageFetchError, MalformedPageError
from ws_scraper.pool import ProxyPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with linear backoff plus jitter, and a request floor."""

    max_retries: int = 3
    backoff_base: float = 1.0  # seconds
    min_interval: float = 0.5  # seconds between requests of one worker

    @classmethod
    def from_config(cls, cfg: PipelineConfig) -> "RetryPolicy":
        return cls(
            max_retries=cfg.max_retries,
            backoff_base=cfg.backoff_base_ms / 1000.0,
            min_interval=cfg.min_request_interval_ms / 1000.0,
        )

    def backoff(self, attempt: int) -> float:
        """Delay before retry ``attempt`` (attempt 0 never waits)."""
        delay = attempt * self.backoff_base
        if delay <= 0:
            return 0.0
        return delay + random.uniform(0, delay / 2)


async def _pace(started: float, policy: RetryPolicy) -> None:
    remaining = policy.min_interval - (time.monotonic() - started)
    if remaining > 0:
        await asyncio.sleep(remaining)


async def fetch_with_retry(
    pool: ProxyPool,
    url: str,
    policy: RetryPolicy,
    *,
    data: Optional[Mapping[str, str]] = None,
    cookies: Optional[httpx.Cookies] = None,
) -> Optional[httpx.Response]:
    """Fetch ``url`` through the pool, POSTing ``data`` as a form when given.

    Transport errors and non-200 statuses ban the client and retry. Returns
    the 200 response, or None once every attempt has failed.
    """
    errors: List[str] = []
    for attempt in range(policy.max_retries):
        if attempt > 0:
            wait = policy.backoff(attempt)
            logger.debug("Retry attempt %d for %s, waiting %.2fs", attempt, url, wait)
            await asyncio.sleep(wait)

        client = pool.get_client()
        started = time.monotonic()
        try:
            if data is None:
                resp = await client.get(url, cookies=cookies)
            else:
                resp = await client.post_form(url, data, cookies=cookies)
        except httpx.HTTPError as exc:
            logger.debug("Request error for %s (attempt %d): %s", url, attempt, exc)
            errors.append(f"{type(exc).__name__}: {exc}, attempt={attempt}")
            client.ban()
            await _pace(started, policy)
            continue

        if resp.status_code != httpx.codes.OK:
            errors.append(f"Bad status code={resp.status_code}, attempt={attempt}")
            client.ban()
            await _pace(started, policy)
            continue

        client.readd()
        await _pace(started, policy)
        return resp

    logger.error("Failed all retry attempts for %s", url)
    for err in errors:
        logger.error("%s: %s", url, err)
    return None


def parse_document(text: str, url: str = "") -> BeautifulSoup:
    """Parse an HTML page; raises MalformedPageError for an unusable body."""
    if not text or not text.strip():
        raise MalformedPageError(f"empty response body from {url}")
    try:
        return BeautifulSoup(text, "html.parser")
    except Exception as exc:
        raise MalformedPageError(f"couldn't parse {url}: {exc}") from exc


async def fetch_image(pool: ProxyPool, url: str, policy: RetryPolicy) -> Image.Image:
    """Fetch and decode a card image."""
    resp = await fetch_with_retry(pool, url, policy)
    if resp is None:
        raise ImageFetchError(f"failed to get image after {policy.max_retries} attempts: {url}")
    try:
        img = Image.open(io.BytesIO(resp.content))
        img.load()
    except Exception as exc:
        raise ImageFetchError(f"couldn't decode image {url}: {exc}") from exc
    return img
