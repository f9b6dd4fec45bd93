"""HTTP client pools.

The pipeline asks a pool for a client per request attempt, then reports the
outcome: ``ban()`` after a failure, ``readd()`` after a success. Pools are
safe to share between every worker of every task.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Dict, List, Mapping, Optional, Protocol, runtime_checkable

import httpx

from ws_scraper.config import PoolConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class PooledClient(Protocol):
    """One client lease from a pool."""

    async def get(self, url: str, cookies: Optional[httpx.Cookies] = None) -> httpx.Response:
        ...

    async def post_form(
        self,
        url: str,
        data: Mapping[str, str],
        cookies: Optional[httpx.Cookies] = None,
    ) -> httpx.Response:
        ...

    def ban(self) -> None:
        """Report that the last request through this client failed."""
        ...

    def readd(self) -> None:
        """Return the client to the pool after a successful request."""
        ...


@runtime_checkable
class ProxyPool(Protocol):
    """Source of HTTP clients, possibly rotating through proxies."""

    def get_client(self) -> PooledClient:
        ...

    async def close(self) -> None:
        ...


def _new_client(cfg: PoolConfig, proxy: Optional[str] = None) -> httpx.AsyncClient:
    kwargs = {}
    if proxy:
        kwargs["proxy"] = proxy
    return httpx.AsyncClient(
        timeout=cfg.timeout_s,
        follow_redirects=False,
        verify=cfg.verify_tls,
        headers={"User-Agent": cfg.user_agent},
        **kwargs,
    )


class _Lease:
    """Client lease that applies the caller's cookie jar to each request."""

    def __init__(self, client: httpx.AsyncClient, on_ban, on_readd) -> None:
        self._client = client
        self._on_ban = on_ban
        self._on_readd = on_readd

    async def get(self, url: str, cookies: Optional[httpx.Cookies] = None) -> httpx.Response:
        request = self._client.build_request("GET", url)
        return await self._send(request, cookies)

    async def post_form(
        self,
        url: str,
        data: Mapping[str, str],
        cookies: Optional[httpx.Cookies] = None,
    ) -> httpx.Response:
        request = self._client.build_request("POST", url, data=dict(data))
        return await self._send(request, cookies)

    async def _send(self, request: httpx.Request, cookies: Optional[httpx.Cookies]) -> httpx.Response:
        # Redirects are followed here, one hop at a time, so the task jar
        # applies to every hop and the shared client's own jar never does.
        history: List[httpx.Response] = []
        while True:
            if cookies is not None:
                request.headers.pop("Cookie", None)
                cookies.set_cookie_header(request)
            response = await self._client.send(request)
            if cookies is not None:
                cookies.extract_cookies(response)
            next_request = response.next_request
            if next_request is None:
                response.history = history
                return response
            if len(history) >= self._client.max_redirects:
                raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)
            await response.aread()
            history.append(response)
            request = next_request

    def ban(self) -> None:
        self._on_ban()

    def readd(self) -> None:
        self._on_readd()


class DirectPool:
    """Pool backed by a single direct connection.

    Ban/readd outcomes are only counted; there is nothing to rotate.
    """

    def __init__(self, config: Optional[PoolConfig] = None) -> None:
        self._config = config or PoolConfig()
        self._client: Optional[httpx.AsyncClient] = None
        self.bans = 0
        self.readds = 0

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = _new_client(self._config)
        return self._client

    def get_client(self) -> PooledClient:
        return _Lease(self._get_http_client(), self._ban, self._readd)

    def _ban(self) -> None:
        self.bans += 1

    def _readd(self) -> None:
        self.readds += 1

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()


class RotatingProxyPool:
    """Round-robin pool over proxy URLs.

    A banned proxy is skipped until its cooldown expires. When every proxy
    is resting, the one whose ban expires first is used anyway.
    """

    def __init__(self, config: PoolConfig) -> None:
        if not config.proxies:
            raise ValueError("RotatingProxyPool needs at least one proxy")
        self._config = config
        self._proxies: List[str] = list(config.proxies)
        self._clients: Dict[str, httpx.AsyncClient] = {}
        self._banned_until: Dict[str, float] = {}
        self._cycle = itertools.cycle(self._proxies)

    def get_client(self) -> PooledClient:
        proxy = self._next_proxy()
        client = self._clients.get(proxy)
        if client is None or client.is_closed:
            client = _new_client(self._config, proxy)
            self._clients[proxy] = client
        return _Lease(
            client,
            on_ban=lambda: self._ban(proxy),
            on_readd=lambda: self._banned_until.pop(proxy, None),
        )

    def _next_proxy(self) -> str:
        now = time.monotonic()
        for _ in range(len(self._proxies)):
            proxy = next(self._cycle)
            if self._banned_until.get(proxy, 0.0) <= now:
                return proxy
        return min(self._proxies, key=lambda p: self._banned_until.get(p, 0.0))

    def _ban(self, proxy: str) -> None:
        logger.debug("Banning proxy %s for %ss", proxy, self._config.ban_cooldown_s)
        self._banned_until[proxy] = time.monotonic() + self._config.ban_cooldown_s

    async def close(self) -> None:
        for client in self._clients.values():
            if not client.is_closed:
                await client.aclose()
        self._clients.clear()


def build_pool(config: Optional[PoolConfig] = None) -> ProxyPool:
    """Create the pool described by ``config``."""
    config = config or PoolConfig()
    if config.proxies:
        logger.info("Using %d rotating proxies", len(config.proxies))
        return RotatingProxyPool(config)
    return DirectPool(config)
