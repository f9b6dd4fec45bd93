"""Scrape pipeline: fetch -> scan -> extract, per ScrapeTask.

Each task reads its page count from page 1, then runs its own pool of fetch and scan
workers. Extraction workers are shared by every task of a run. A task is
finished once every one of its pages has been scanned (or given up on);
scan workers may push a page back to the fetch queue, so completion is
counted at scan time, not at fetch time.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import AsyncIterator, Dict, List, Optional

import httpx
from bs4 import Tag

from ws_scraper.config import (
    PipelineConfig,
    PoolConfig,
    ScrapeConfig,
    validate_pipeline_config,
    validate_scrape_config,
)
from ws_scraper.errors import ImageFetchError, MalformedPageError, ScrapeError
from ws_scraper.extract import extract_card
from ws_scraper.fetch import RetryPolicy, fetch_image, fetch_with_retry, parse_document
from ws_scraper.models import Card
from ws_scraper.pool import ProxyPool, build_pool
from ws_scraper.sites import get_site
from ws_scraper.sites.base import ScanContext, SiteProfile, page_url

logger = logging.getLogger(__name__)

_DONE = object()


@dataclass(frozen=True)
class PageResponse:
    url: str
    text: str


@dataclass(frozen=True)
class FailedPage:
    """A page or card detail the pipeline gave up on."""

    url: str
    attempts: int
    reason: str


async def _supervise(awaitable, workers: List[asyncio.Task]) -> None:
    """Await ``awaitable``; if a worker dies first, re-raise its error."""
    waiter = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait([waiter, *workers], return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        waiter.cancel()
        raise
    if waiter in done:
        waiter.result()
        return
    waiter.cancel()
    for worker in done:
        exc = worker.exception()
        if exc is not None:
            raise ScrapeError(f"pipeline worker failed: {exc}") from exc
    raise ScrapeError("pipeline worker exited unexpectedly")


class CompletionTracker:
    """Counts a task's pages that are not yet accounted for."""

    def __init__(self, pending: int) -> None:
        self._pending = pending
        self._finished = asyncio.Event()
        if pending <= 0:
            self._finished.set()

    @property
    def pending(self) -> int:
        return self._pending

    def done(self) -> None:
        if self._pending <= 0:
            raise RuntimeError("completion counter decremented below zero")
        self._pending -= 1
        if self._pending == 0:
            self._finished.set()

    async def wait(self) -> None:
        await self._finished.wait()


@dataclass
class ScrapeTask:
    """One crawl of the search results for a single set of form values."""

    site: SiteProfile
    form: Dict[str, str]
    cookies: httpx.Cookies = field(default_factory=httpx.Cookies)
    last_page: int = 0
    page_urls: Optional[asyncio.Queue] = None
    responses: Optional[asyncio.Queue] = None
    tracker: Optional[CompletionTracker] = None
    attempts: Counter = field(default_factory=Counter)
    failed: List[FailedPage] = field(default_factory=list)

    def start(self, last_page: int, response_capacity: int) -> None:
        """Size the queues and the completion counter once the page count is known."""
        self.last_page = last_page
        self.page_urls = asyncio.Queue(maxsize=max(last_page, 1))
        self.responses = asyncio.Queue(maxsize=response_capacity)
        self.tracker = CompletionTracker(last_page)


class CardPipeline:
    """Streams every card matching a ScrapeConfig.

    Usage::

        pipeline = CardPipeline(scrape_config)
        async for card in pipeline.stream():
            ...
        pipeline.failed_pages  # pages given up on, if any
    """

    def __init__(
        self,
        config: ScrapeConfig,
        pool: Optional[ProxyPool] = None,
        pipeline_config: Optional[PipelineConfig] = None,
        pool_config: Optional[PoolConfig] = None,
    ) -> None:
        self._config = config
        self._pool = pool
        self._settings = pipeline_config or PipelineConfig()
        self._pool_config = pool_config
        self._policy = RetryPolicy.from_config(self._settings)
        self._tasks: List[ScrapeTask] = []
        self._error: Optional[BaseException] = None

    @property
    def failed_pages(self) -> List[FailedPage]:
        return [fp for task in self._tasks for fp in task.failed]

    def validate(self) -> SiteProfile:
        """Check the configuration; raises ConfigError before any request."""
        validate_scrape_config(self._config)
        validate_pipeline_config(self._settings)
        return get_site(self._config.language)

    async def stream(self) -> AsyncIterator[Card]:
        """Yield cards as they are extracted, in no particular order."""
        site = self.validate()
        form = site.search_form(self._config)
        logger.info("Streaming %s cards with %s", site.language, form)

        out: asyncio.Queue = asyncio.Queue(maxsize=self._settings.max_scrape_workers)
        runner = asyncio.create_task(self._run(site, form, out))
        try:
            while True:
                item = await out.get()
                if item is _DONE:
                    break
                yield item
        finally:
            if not runner.done():
                runner.cancel()
                await asyncio.gather(runner, return_exceptions=True)

        if self._error is not None:
            raise self._error

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def _run(self, site: SiteProfile, form: Dict[str, str], out: asyncio.Queue) -> None:
        pool = self._pool or build_pool(self._pool_config)
        try:
            await self._execute(site, form, pool, out)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._error = exc
        finally:
            if self._pool is None:
                await pool.close()
        await out.put(_DONE)

    async def _execute(
        self,
        site: SiteProfile,
        form: Dict[str, str],
        pool: ProxyPool,
        out: asyncio.Queue,
    ) -> None:
        self._tasks = await self._build_tasks(site, form, pool)
        total = 0
        for task in self._tasks:
            last = await self._read_last_page(task, pool)
            task.start(last, self._settings.max_scrape_workers)
            total += last
        logger.debug("Number of pages to scan: %d", total)

        handles: asyncio.Queue = asyncio.Queue(maxsize=self._settings.max_local_workers)
        workers = [
            asyncio.create_task(self._extract_worker(i, site, pool, handles, out))
            for i in range(self._settings.max_local_workers)
        ]
        try:
            for task in self._tasks:
                for i in range(self._settings.max_scrape_workers):
                    workers.append(asyncio.create_task(self._fetch_worker(i, task, pool)))
                    workers.append(asyncio.create_task(self._scan_worker(i, task, pool, handles)))
                await self._enqueue_pages(task)

            # Scanners may send pages back for fetching, so wait on scans.
            await _supervise(asyncio.gather(*(task.tracker.wait() for task in self._tasks)), workers)
            await _supervise(handles.join(), workers)
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        for task in self._tasks:
            logger.info("Task %s finished: %d pages, %d failed", task.form, task.last_page, len(task.failed))

    async def _build_tasks(
        self, site: SiteProfile, form: Dict[str, str], pool: ProxyPool
    ) -> List[ScrapeTask]:
        if not self._config.recent:
            return [ScrapeTask(site=site, form=form)]

        resp = await fetch_with_retry(pool, site.card_list_url, self._policy)
        if resp is None:
            raise ScrapeError(f"error getting recent releases from {site.card_list_url}")
        doc = parse_document(resp.text, site.card_list_url)
        tasks = [ScrapeTask(site=site, form=f) for f in site.recent_release_filters(doc)]
        if not tasks:
            logger.warning("No recent releases found on %s", site.card_list_url)
        return tasks

    async def _read_last_page(self, task: ScrapeTask, pool: ProxyPool) -> int:
        url = page_url(task.site.card_search_url, 1)
        logger.info("Getting last page of %s with %s", task.site.card_search_url, task.form)
        resp = await fetch_with_retry(pool, url, self._policy, data=task.form, cookies=task.cookies)
        if resp is None:
            raise ScrapeError(f"error getting last page for {task.form}")
        last = task.site.last_page(parse_document(resp.text, url))
        logger.info("Last page is %d for %s", last, task.form)
        return last

    async def _enqueue_pages(self, task: ScrapeTask) -> None:
        for i in range(1, task.last_page + 1):
            if i < self._config.page_start:
                # Skipped pages count as scanned so the task can finish.
                task.tracker.done()
                continue
            page = task.last_page - i + 1 if self._config.reverse else i
            await task.page_urls.put(page_url(task.site.card_search_url, page))

    async def _requeue(self, task: ScrapeTask, url: str, reason: str) -> None:
        """Send a page back for another pass, or give up on it at the ceiling."""
        task.attempts[url] += 1
        limit = self._settings.max_page_attempts
        if limit and task.attempts[url] >= limit:
            logger.error("Giving up on %s after %d passes: %s", url, task.attempts[url], reason)
            task.failed.append(FailedPage(url=url, attempts=task.attempts[url], reason=reason))
            task.tracker.done()
            return
        await task.page_urls.put(url)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _fetch_worker(self, wid: int, task: ScrapeTask, pool: ProxyPool) -> None:
        while True:
            url = await task.page_urls.get()
            logger.debug("Fetch worker %d: fetching %s with %s", wid, url, task.form)
            resp = await fetch_with_retry(pool, url, self._policy, data=task.form, cookies=task.cookies)
            if resp is None:
                await self._requeue(task, url, "fetch failed")
                continue
            await task.responses.put(PageResponse(url=url, text=resp.text))

    async def _scan_worker(
        self, wid: int, task: ScrapeTask, pool: ProxyPool, handles: asyncio.Queue
    ) -> None:
        def item_failed(url: str, reason: str) -> None:
            task.failed.append(FailedPage(url=url, attempts=self._policy.max_retries, reason=reason))

        ctx = ScanContext(
            pool=pool,
            policy=self._policy,
            cookies=task.cookies,
            emit=handles.put,
            item_failed=item_failed,
        )
        while True:
            page = await task.responses.get()
            logger.debug("Scan worker %d: scanning %s", wid, page.url)
            try:
                doc = parse_document(page.text, page.url)
                await task.site.scan_page(doc, page.url, ctx)
            except MalformedPageError as exc:
                logger.error("Couldn't parse result page %s: %s", page.url, exc)
                await self._requeue(task, page.url, str(exc))
                continue
            except Exception as exc:
                logger.error("Error scanning %s: %s", page.url, exc, exc_info=True)
                await self._requeue(task, page.url, str(exc))
                continue
            task.tracker.done()
            logger.debug("Scan worker %d: finished %s", wid, page.url)

    async def _extract_worker(
        self,
        wid: int,
        site: SiteProfile,
        pool: ProxyPool,
        handles: asyncio.Queue,
        out: asyncio.Queue,
    ) -> None:
        while True:
            fragment: Tag = await handles.get()
            try:
                card = extract_card(site, fragment).card
                if self._config.images and card.image_url:
                    card = await self._attach_image(card, pool)
                await out.put(card)
            finally:
                handles.task_done()

    async def _attach_image(self, card: Card, pool: ProxyPool) -> Card:
        try:
            img = await fetch_image(pool, card.image_url, self._policy)
        except ImageFetchError as exc:
            logger.error("Problem getting image for %s: %s", card.card_number, exc)
            return card
        return replace(card, image=img)
