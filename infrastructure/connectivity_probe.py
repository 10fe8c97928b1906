"""
HTTP reachability probe.

Stands in for the browser's online/offline events: polls the backend URL
and reports the result to the ConnectivityMonitor, which fires a sync
trigger on every offline -> online transition. Any HTTP response counts as
online; connection errors and timeouts count as offline.
"""

import asyncio
import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class ConnectivityProbe:
    """
    Periodically check that the backend is reachable.

    Usage:
        probe = ConnectivityProbe(settings.probe_url, service.set_online, interval=30)
        await probe.start()
        ...
        await probe.stop()
    """

    def __init__(
        self,
        url: str,
        report: Callable[[bool], None],
        *,
        interval: float = 30.0,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._url = url
        self._report = report
        self._interval = interval
        self._timeout = timeout
        self._transport = transport
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check(self) -> bool:
        """One probe: True if the backend answered at all."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.head(self._url)
                logger.debug(f"Connectivity probe: HTTP {response.status_code}")
                return True
        except httpx.TimeoutException as e:
            logger.debug(f"Connectivity probe timed out: {e}")
            return False
        except httpx.TransportError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            return False

    async def probe_once(self) -> bool:
        online = await self.check()
        self._report(online)
        return online

    async def start(self) -> None:
        """Probe now, then keep probing in the background."""
        if self.is_running:
            return
        await self.probe_once()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Connectivity probe started ({self._url}, every {self._interval:.0f}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.probe_once()
