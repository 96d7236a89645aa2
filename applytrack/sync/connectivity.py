"""Connectivity, visibility and teardown signals for the sync engine.

The monitor holds the current online/visible state and turns raw platform
signals into the transitions the queue reacts to:

- offline -> online: reconnect (sync immediately)
- hidden -> visible while online: catch up on missed transitions
- teardown: best-effort flush before the process goes away

Signals come from the host application (``set_online``, ``set_visible``,
``teardown``) or from an optional HTTP health probe run on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

import httpx

from applytrack.sync.events import Subscribers, Unsubscribe
from applytrack.utils.async_utils import spawn

logger = logging.getLogger(__name__)


class ConnectivityState(Enum):
    """Overall connectivity state."""

    ONLINE = "online"
    OFFLINE = "offline"


class ConnectivityMonitor:
    """Track online/offline and visibility transitions.

    Example:
        >>> monitor = ConnectivityMonitor(online=False)
        >>> monitor.on_reconnect(lambda: print("back online"))
        >>> monitor.set_online(True)
        back online
    """

    DEFAULT_PROBE_INTERVAL = 30.0  # seconds
    DEFAULT_PROBE_TIMEOUT = 5.0  # seconds

    def __init__(
        self,
        online: bool = True,
        probe_url: str | None = None,
        probe_interval: float = DEFAULT_PROBE_INTERVAL,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize connectivity monitor.

        Args:
            online: Initial connectivity state.
            probe_url: Health URL polled by ``start()``; no probing when None.
            probe_interval: Seconds between probes.
            probe_timeout: Timeout of a single probe request.
            client: Optional preconfigured httpx client for probing.
        """
        self._online = online
        self._visible = True
        self._torn_down = False

        self._probe_url = probe_url
        self._probe_interval = probe_interval
        self._probe_timeout = probe_timeout
        self._client = client
        self._owns_client = client is None
        self._probe_task: asyncio.Task[None] | None = None

        self._reconnect: Subscribers[None] = Subscribers("reconnect")
        self._disconnect: Subscribers[None] = Subscribers("disconnect")
        self._visible_again: Subscribers[None] = Subscribers("visibility")
        self._teardown: Subscribers[None] = Subscribers("teardown")

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_visible(self) -> bool:
        return self._visible

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    @property
    def probe_configured(self) -> bool:
        return bool(self._probe_url)

    @property
    def state(self) -> ConnectivityState:
        return ConnectivityState.ONLINE if self._online else ConnectivityState.OFFLINE

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_reconnect(self, listener: Callable[[], None]) -> Unsubscribe:
        """Call ``listener`` on every offline -> online transition."""
        return self._reconnect.subscribe(lambda _: listener())

    def on_disconnect(self, listener: Callable[[], None]) -> Unsubscribe:
        """Call ``listener`` on every online -> offline transition."""
        return self._disconnect.subscribe(lambda _: listener())

    def on_visible(self, listener: Callable[[], None]) -> Unsubscribe:
        """Call ``listener`` when the app becomes visible again while online."""
        return self._visible_again.subscribe(lambda _: listener())

    def on_teardown(self, listener: Callable[[], None]) -> Unsubscribe:
        """Call ``listener`` once when the application is torn down."""
        return self._teardown.subscribe(lambda _: listener())

    # ------------------------------------------------------------------
    # Platform signals
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> None:
        """Record a connectivity signal; listeners fire only on transitions."""
        if self._online == online:
            return

        self._online = online
        if online:
            logger.info("Connectivity restored")
            self._reconnect.emit(None)
        else:
            logger.warning("Connectivity lost")
            self._disconnect.emit(None)

    def set_visible(self, visible: bool) -> None:
        """Record a page/app visibility signal."""
        was_visible = self._visible
        self._visible = visible

        if visible and not was_visible and self._online:
            logger.debug("Application visible again while online")
            self._visible_again.emit(None)

    def teardown(self) -> None:
        """Signal that the application is going away. Fires at most once."""
        if self._torn_down:
            return
        self._torn_down = True
        logger.info("Application teardown signalled")
        self._teardown.emit(None)

    # ------------------------------------------------------------------
    # Active probing
    # ------------------------------------------------------------------

    async def probe(self) -> bool:
        """Check ``probe_url`` once and update the online state.

        Any 2xx response counts as online; errors, timeouts and other
        statuses count as offline. Without a probe URL the current state
        is returned unchanged.
        """
        if not self._probe_url:
            return self._online

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._probe_timeout)

        try:
            response = await self._client.get(self._probe_url, timeout=self._probe_timeout)
            online = response.is_success
            if not online:
                logger.debug(f"Probe {self._probe_url} returned HTTP {response.status_code}")
        except httpx.HTTPError as e:
            logger.debug(f"Probe {self._probe_url} failed: {e}")
            online = False

        self.set_online(online)
        return online

    def start(self) -> None:
        """Start background probing on the running event loop (no-op without a URL)."""
        if not self._probe_url or self._probe_task is not None:
            return

        self._probe_task = spawn(
            self._probe_loop(),
            name="connectivity-probe",
            msg="Connectivity probe failed",
            logger_instance=logger,
        )
        logger.info(f"Connectivity probe started for {self._probe_url}")

    async def stop(self) -> None:
        """Stop background probing and release the probe client."""
        task, self._probe_task = self._probe_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Connectivity probe stopped")

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _probe_loop(self) -> None:
        while True:
            await self.probe()
            await asyncio.sleep(self._probe_interval)
