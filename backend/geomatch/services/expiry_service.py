"""Background task that cancels pending requests nobody answered in time."""

import asyncio
from datetime import timedelta
from typing import Optional

from geomatch.core.logging import get_logger
from geomatch.infrastructure.store import utcnow
from geomatch.services.request_service import RequestCoordinator

logger = get_logger(__name__)


class RequestExpiryMonitor:
    def __init__(self, coordinator: RequestCoordinator, expiry_seconds: int, interval_seconds: int):
        self.coordinator = coordinator
        self.expiry = timedelta(seconds=expiry_seconds)
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            logger.info(
                "expiry_monitor_starting",
                expiry_seconds=self.expiry.total_seconds(),
                interval_seconds=self.interval_seconds,
            )
            self._task = asyncio.create_task(self._run(), name="request-expiry-monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> list[int]:
        return await self.coordinator.expire_stale(utcnow() - self.expiry)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.exception("expiry_monitor_error")
