"""Fetch resilience layer.

Wraps a plain fetch primitive (anything with an async ``get``) with
session rotation, proxy selection, the proxy circuit breaker, response
classification and tenacity retries. Callers get a response or None and
never see an exception for a failed page.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple, Union

import httpx
import structlog

from catalog_scraper.config import settings
from catalog_scraper.core.exceptions import (
    BlockedResponseError,
    ProxyAuthError,
    TransientFetchError,
)
from catalog_scraper.scrapers.utils.retry import RETRYABLE_FETCH_ERRORS, build_fetch_retrying

logger = structlog.get_logger(__name__)

QueryParams = Union[Dict[str, Any], Sequence[Tuple[str, str]], None]

BLOCKED_STATUSES = frozenset([403, 429])
PROXY_AUTH_STATUSES = frozenset([407, 597])

_PROXY_WORD = re.compile(r"proxy", re.IGNORECASE)


def is_proxy_auth_error(message: Optional[str]) -> bool:
    """Whether a transport error message means the proxy rejected our credentials."""
    if not message:
        return False
    if "UPSTREAM407" in message or "Proxy responded with 597" in message:
        return True
    return bool(_PROXY_WORD.search(message)) and ("407" in message or "597" in message)


@dataclass
class FetchResponse:
    """Transport-independent view of one HTTP response."""

    status_code: int
    text: str
    url: str
    cookies: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Optional[Any]:
        """Parsed JSON body, or None if the body is not JSON."""
        try:
            return json.loads(self.text)
        except (ValueError, RecursionError):
            return None


class HttpFetcher(Protocol):
    """The fetch primitive: one GET, no retries, no classification."""

    async def get(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        params: QueryParams = None,
        proxy: Optional[str] = None,
        cookies: Optional[Dict[str, str]] = None,
    ) -> FetchResponse:
        ...


class HttpxFetcher:
    """Fetch primitive on httpx.AsyncClient, one client per proxy URL."""

    def __init__(self, timeout: float = None, transport: httpx.AsyncBaseTransport = None):
        """Initialize the primitive.

        Args:
            timeout: Request timeout in seconds
            transport: Custom transport (used by tests with httpx.MockTransport)
        """
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.transport = transport
        self._clients: Dict[Optional[str], httpx.AsyncClient] = {}

    def _client(self, proxy: Optional[str]) -> httpx.AsyncClient:
        client = self._clients.get(proxy)
        if client is None:
            kwargs: Dict[str, Any] = {"timeout": self.timeout, "follow_redirects": True}
            if self.transport is not None:
                kwargs["transport"] = self.transport
            elif proxy:
                kwargs["proxy"] = proxy
            client = httpx.AsyncClient(**kwargs)
            self._clients[proxy] = client
        return client

    async def get(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        params: QueryParams = None,
        proxy: Optional[str] = None,
        cookies: Optional[Dict[str, str]] = None,
    ) -> FetchResponse:
        headers = dict(headers)
        if cookies:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
        response = await self._client(proxy).get(url, headers=headers, params=params)
        return FetchResponse(
            status_code=response.status_code,
            text=response.text,
            url=str(response.url),
            cookies=dict(response.cookies),
        )

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()


class ResilientFetcher:
    """Session-aware, proxy-aware, retrying wrapper around a fetch primitive.

    Response classification:
        403/429       -> session marked bad, retried on a fresh session
        407/597       -> proxy circuit opened, retried without proxy
        5xx/network   -> retried
        other non-2xx -> None, no retry
    """

    def __init__(
        self,
        primitive: HttpFetcher,
        proxy_manager,
        run_state,
        session_pool,
        max_attempts: int = None,
        wait_min: float = None,
        wait_max: float = None,
    ):
        """Initialize the fetcher.

        Args:
            primitive: Fetch primitive (HttpxFetcher or a test double)
            proxy_manager: ProxyManager or NoProxyManager
            run_state: RunState holding the proxy circuit latch
            session_pool: SessionPool handing out header/cookie identities
            max_attempts: Attempts per fetch, first one included
            wait_min: Minimum backoff between attempts in seconds
            wait_max: Maximum backoff between attempts in seconds
        """
        self.primitive = primitive
        self.proxy_manager = proxy_manager
        self.run_state = run_state
        self.session_pool = session_pool
        self.max_attempts = max_attempts
        self.wait_min = wait_min
        self.wait_max = wait_max

    async def fetch(
        self,
        url: str,
        session=None,
        accept: str = "html",
        params: QueryParams = None,
    ) -> Optional[FetchResponse]:
        """Fetch a URL with retries.

        Args:
            url: Absolute URL
            session: Preferred session; replaced if it is or becomes unusable
            accept: "html" or "json"
            params: Query parameters (dict or list of pairs)

        Returns:
            FetchResponse on a 2xx answer, None when the page is abandoned
        """
        holder = {"session": session}
        retrying = build_fetch_retrying(self.max_attempts, self.wait_min, self.wait_max)
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(url, holder, accept, params)
        except RETRYABLE_FETCH_ERRORS as e:
            logger.warning(
                "fetch_abandoned",
                url=url,
                error_type=type(e).__name__,
                error=e.message,
            )
        return None

    async def fetch_json(
        self,
        url: str,
        session=None,
        params: QueryParams = None,
    ) -> Optional[Any]:
        """Fetch a URL and parse the body as JSON (None on any failure)."""
        response = await self.fetch(url, session=session, accept="json", params=params)
        if response is None:
            return None
        return response.json()

    async def _attempt(self, url: str, holder: dict, accept: str, params: QueryParams) -> Optional[FetchResponse]:
        session = holder["session"]
        if session is None or not session.usable:
            session = self.session_pool.get_session()
            holder["session"] = session

        proxy = None
        if not self.run_state.proxy_circuit_open:
            proxy = self.proxy_manager.get_proxy(session.id)

        headers = dict(session.headers)
        if accept == "json":
            headers["Accept"] = "application/json"

        try:
            response = await self.primitive.get(
                url,
                headers=headers,
                params=params,
                proxy=proxy,
                cookies=session.cookies,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            message = str(e) or type(e).__name__
            if isinstance(e, httpx.TransportError) and is_proxy_auth_error(message):
                session.mark_bad()
                await self.run_state.open_proxy_circuit(message)
                raise ProxyAuthError(url, message)
            if proxy:
                self.proxy_manager.mark_failed(proxy)
            raise TransientFetchError(url, message)

        status = response.status_code

        if status in PROXY_AUTH_STATUSES:
            session.mark_bad()
            await self.run_state.open_proxy_circuit(f"Proxy responded with {status}")
            raise ProxyAuthError(url, f"HTTP {status}", status_code=status)

        if status in BLOCKED_STATUSES:
            session.mark_bad()
            logger.info("session_blocked", url=url, status_code=status, session_id=session.id)
            raise BlockedResponseError(url, status)

        if status >= 500:
            if proxy:
                self.proxy_manager.mark_failed(proxy)
            raise TransientFetchError(url, f"HTTP {status}", status_code=status)

        if not 200 <= status < 300:
            logger.debug("fetch_rejected", url=url, status_code=status)
            return None

        if proxy:
            self.proxy_manager.mark_success(proxy)
        session.update_cookies(response.cookies)
        return response
