"""Transports that deliver offline actions to their endpoints.

- HttpTransport: the retry-tracked path. Async (httpx), raises DeliveryError
  on any non-2xx response, transport error or timeout.
- BeaconTransport: best-effort, fire-and-forget delivery used while the
  application is shutting down. requests on a background worker pool,
  never raises, and ignores the response entirely.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx
import requests

from applytrack.errors import DeliveryError, delivery_timeout, http_status_error
from applytrack.sync.models import HttpMethod, OfflineAction

logger = logging.getLogger(__name__)

USER_AGENT = "applytrack-sync/1.0"
DEFAULT_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class ActionTransport(Protocol):
    """Anything that can deliver one action and return its decoded response."""

    async def send(self, action: OfflineAction) -> Any:
        """Deliver ``action``; raise on failure."""
        ...


def _request_headers(action: OfflineAction) -> dict[str, str]:
    return {**DEFAULT_HEADERS, **action.headers}


def _decode_response(response: httpx.Response) -> Any:
    """JSON body if there is one, the raw text if it isn't JSON, else None."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpTransport:
    """Deliver actions over HTTP with an async httpx client.

    Example:
        >>> transport = HttpTransport(base_url="https://tracker.example.com")
        >>> body = await transport.send(action)
        >>> await transport.aclose()
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float | None = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Base URL for relative action endpoints.
            timeout: Per-request timeout in seconds (None disables it).
            client: Optional preconfigured client; it is not closed by ``aclose``.
        """
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )

    async def send(self, action: OfflineAction) -> Any:
        """Deliver one action.

        Returns:
            The decoded response body.

        Raises:
            DeliveryError: On a non-2xx response, transport error or timeout.
        """
        body = None
        if action.method != HttpMethod.GET:
            body = json.dumps(action.payload)

        try:
            response = await self._client.request(
                action.method.value,
                action.endpoint,
                headers=_request_headers(action),
                content=body,
            )
        except httpx.TimeoutException as e:
            raise delivery_timeout(action.id, self._timeout or 0.0) from e
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"Transport error: {e}", action_id=action.id, cause=e
            ) from e

        if not response.is_success:
            raise http_status_error(action.id, response.status_code, response.reason_phrase)

        return _decode_response(response)

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()


class BeaconTransport:
    """Fire-and-forget delivery for the teardown flush.

    Only POST actions are sent, mirroring what a browser beacon allows.
    ``fire`` hands each request to a small worker pool and returns at once,
    so a dead network never stalls the caller's event loop. Nothing about
    the outcome is reported back to the queue.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 2.0,
        session: requests.Session | None = None,
        max_workers: int = 4,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._owns_session = session is None
        self._session = session or self._create_session()

        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[Future[bool]] = set()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._closed = False

    @staticmethod
    def _create_session() -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": USER_AGENT})
        return session

    def _url(self, endpoint: str) -> str:
        return urljoin(self._base_url, endpoint) if self._base_url else endpoint

    @staticmethod
    def accepts(action: OfflineAction) -> bool:
        return action.method == HttpMethod.POST

    def fire(self, action: OfflineAction) -> bool:
        """Queue ``action`` for a background POST and return immediately.

        Returns:
            True if the request was handed off, False if skipped or closed.
        """
        if not self.accepts(action):
            logger.debug(f"Beacon skips {action.method.value} action {action.id}")
            return False

        with self._lock:
            if self._closed:
                logger.debug(f"Beacon closed, dropping critical action {action.id}")
                return False
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="applytrack-beacon"
                )
            future = self._executor.submit(self.send, action)
            self._pending.add(future)

        future.add_done_callback(self._settled)
        return True

    def send(self, action: OfflineAction) -> bool:
        """POST ``action`` on the calling thread; the response is ignored.

        Returns:
            True if the request went out, False if skipped or it failed.
        """
        if not self.accepts(action):
            return False

        try:
            self._session.post(
                self._url(action.endpoint),
                data=json.dumps(action.payload),
                headers=_request_headers(action),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to send critical action {action.id}: {e}")
            return False
        return True

    def drain(self, timeout: float | None = None) -> bool:
        """Block until handed-off requests finish. True if none are left."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._pending, timeout)

    def close(self) -> None:
        """Stop accepting beacons. In-flight requests finish in the background."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            idle = not self._pending
            executor, self._executor = self._executor, None

        if executor is not None:
            executor.shutdown(wait=False)
        if idle:
            self._close_session()

    def _settled(self, future: Future[bool]) -> None:
        with self._idle:
            self._pending.discard(future)
            if self._pending:
                return
            if self._closed:
                self._close_session()
            self._idle.notify_all()

    def _close_session(self) -> None:
        if self._owns_session:
            self._session.close()
