"""
Connectivity & Lifecycle Monitor.

Turns connectivity and lifecycle signals into discrete sync triggers:
- process startup while online
- offline -> online transition
- visibility regained while online
- optional periodic safety-net timer
- delayed re-trigger after a transient failure (backoff)

The monitor performs no I/O. Signals come from the host (HTTP endpoint,
connectivity probe, CLI). Firing the trigger several times in a row is fine;
the coordinator deduplicates.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from backend.sync.events import ConnectivityChanged, EventBus

logger = logging.getLogger(__name__)


class TriggerReason(str, Enum):
    STARTUP = "startup"
    RECONNECTED = "reconnected"
    VISIBILITY = "visibility"
    PERIODIC = "periodic"
    BACKOFF = "backoff"
    LOCAL_CHANGE = "local_change"
    MANUAL = "manual"


SyncTrigger = Callable[[TriggerReason], None]


class ConnectivityMonitor:
    """Decides when a flush should be attempted."""

    def __init__(
        self,
        events: Optional[EventBus] = None,
        *,
        periodic_interval: float = 0.0,
    ) -> None:
        self._events = events
        self._periodic_interval = periodic_interval
        self._callbacks: List[SyncTrigger] = []
        self._online = False
        self._started = False
        self._periodic_task: Optional[asyncio.Task] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def retry_scheduled(self) -> bool:
        return self._retry_handle is not None

    def on_sync_trigger(self, fn: SyncTrigger) -> Callable[[], None]:
        """
        Register a trigger callback.

        Returns:
            Callable removing the registration.
        """
        self._callbacks.append(fn)

        def unregister() -> None:
            if fn in self._callbacks:
                self._callbacks.remove(fn)

        return unregister

    async def start(self, online: bool, *, fire: bool = True) -> None:
        """Process startup: record connectivity and fire if online (unless `fire` is False)."""
        if self._started:
            return
        self._started = True
        self._online = online
        self._publish()
        logger.info(f"Connectivity monitor started ({'online' if online else 'offline'})")

        if self._periodic_interval > 0:
            self._periodic_task = asyncio.create_task(self._periodic())
        if online and fire:
            self._fire(TriggerReason.STARTUP)

    async def stop(self) -> None:
        self._cancel_retry()
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            try:
                await self._periodic_task
            except asyncio.CancelledError:
                pass
            self._periodic_task = None
        self._started = False

    def set_online(self, online: bool) -> None:
        """Report the current connectivity; fires on offline -> online."""
        if online == self._online:
            return
        self._online = online
        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        self._publish()

        if online:
            self._fire(TriggerReason.RECONNECTED)
        else:
            # Reconnection triggers on its own; a pending backoff is moot
            self._cancel_retry()

    def visibility_regained(self) -> None:
        """The app came back to the foreground."""
        if self._online:
            self._fire(TriggerReason.VISIBILITY)

    def request(self, reason: TriggerReason = TriggerReason.MANUAL) -> None:
        """Fire a trigger now if online."""
        if self._online:
            self._fire(reason)

    def schedule_retry(self, delay: float) -> None:
        """Fire a BACKOFF trigger after `delay` seconds (replaces any pending one)."""
        self._cancel_retry()
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self._fire_backoff)
        logger.info(f"Next sync attempt in {delay:.1f}s")

    def _fire_backoff(self) -> None:
        self._retry_handle = None
        if self._online:
            self._fire(TriggerReason.BACKOFF)

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    async def _periodic(self) -> None:
        while True:
            await asyncio.sleep(self._periodic_interval)
            if self._online:
                self._fire(TriggerReason.PERIODIC)

    def _fire(self, reason: TriggerReason) -> None:
        logger.debug(f"Sync trigger: {reason.value}")
        for fn in list(self._callbacks):
            try:
                fn(reason)
            except Exception as e:
                logger.error(f"Sync trigger callback failed: {e}", exc_info=True)

    def _publish(self) -> None:
        if self._events is not None:
            self._events.publish(ConnectivityChanged(online=self._online))
