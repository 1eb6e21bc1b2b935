"""
Concurrency-capped JSON fetcher shared by every upstream integration.

- At most `max_in_flight` requests run at once per fetcher instance; extra callers
  wait in submission order instead of being rejected.
- Each request has its own timeout.
- Failures are classified as retryable (transport errors, 429, 5xx) or terminal
  (other 4xx, unusable bodies). Retrying is left to callers.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Protocol
from urllib.parse import urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

DEFAULT_MAX_IN_FLIGHT = 5
DEFAULT_TIMEOUT_SECONDS = 5.0


class FetchError(RuntimeError):
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        body_snippet: str | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.body_snippet = body_snippet


class RetryableFetchError(FetchError):
    """Timeouts, transport failures, throttling and upstream 5xx."""

    retryable = True


class TerminalFetchError(FetchError):
    """Well-formed client errors (4xx except 429) and unusable payloads."""


class JsonFetcher(Protocol):
    async def fetch_json(self, url: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]: ...


def _redact(url: str) -> str:
    # Query strings carry API keys.
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def classify_status(status_code: int) -> type[FetchError] | None:
    if 200 <= status_code < 300:
        return None
    if status_code == 429 or 500 <= status_code < 600:
        return RetryableFetchError
    return TerminalFetchError


class RateLimitedFetcher:
    """
    Async facade over a pooled `requests.Session`.

    Blocking requests run in worker threads, so the in-flight cap maps to real
    parallel connections.

    Usage:
        fetcher = RateLimitedFetcher(max_in_flight=5, timeout_seconds=5.0)
        payload = await fetcher.fetch_json("https://api.themoviedb.org/3/movie/603", {"api_key": key})
    """

    def __init__(
        self,
        *,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.max_in_flight = max(1, int(max_in_flight))
        self.timeout_seconds = float(timeout_seconds)
        self._semaphore = asyncio.Semaphore(self.max_in_flight)
        self._in_flight = 0
        self._owns_session = session is None
        self.session = session or requests.Session()
        if self._owns_session:
            adapter = HTTPAdapter(
                pool_connections=self.max_in_flight,
                pool_maxsize=self.max_in_flight,
                max_retries=0,
            )
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)
            self.session.headers.update(
                {
                    "accept": "application/json",
                    "user-agent": "catalog-backend/0.1",
                }
            )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def fetch_json(self, url: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """
        GET `url` and return its JSON object.

        `timeout_seconds` bounds the whole call, not just each socket read. A worker
        thread that outlives the deadline keeps its slot until it finishes, so the
        cap always matches the number of open requests.
        """

        await self._semaphore.acquire()
        self._in_flight += 1
        try:
            task = asyncio.ensure_future(asyncio.to_thread(self._get_json, url, dict(params or {})))
        except BaseException:
            self._release()
            raise
        task.add_done_callback(self._on_request_done)

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            safe_url = _redact(url)
            raise RetryableFetchError(
                f"Request exceeded {self.timeout_seconds:g}s: {safe_url}", url=safe_url
            ) from exc

    def _release(self) -> None:
        self._in_flight -= 1
        self._semaphore.release()

    def _on_request_done(self, task: asyncio.Future) -> None:
        self._release()
        if not task.cancelled():
            # Mark the outcome as retrieved when the caller already gave up on it.
            task.exception()

    def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        safe_url = _redact(url)
        logger.debug(f"GET {safe_url}")
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout_seconds)
        except requests.Timeout as exc:
            raise RetryableFetchError(f"Request timed out: {safe_url}", url=safe_url) from exc
        except requests.RequestException as exc:
            raise RetryableFetchError(
                f"Request failed: {safe_url} ({type(exc).__name__})",
                url=safe_url,
            ) from exc

        error_cls = classify_status(resp.status_code)
        if error_cls is not None:
            raise error_cls(
                f"HTTP {resp.status_code} from {safe_url}",
                url=safe_url,
                status_code=resp.status_code,
                body_snippet=(resp.text or "")[:400],
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TerminalFetchError(
                f"Non-JSON response from {safe_url}",
                url=safe_url,
                status_code=resp.status_code,
                body_snippet=(resp.text or "")[:400],
            ) from exc

        if not isinstance(payload, dict):
            raise TerminalFetchError(
                f"Unexpected JSON shape (not an object) from {safe_url}",
                url=safe_url,
                status_code=resp.status_code,
            )
        return payload

    def close(self) -> None:
        if self._owns_session:
            self.session.close()
