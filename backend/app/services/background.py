from __future__ import annotations

import asyncio
from typing import List

import structlog

from app.core.config import settings
from app.db.session import get_session
from app.services.audit import SessionAuditService
from app.services.clock import SystemClock
from app.services.theater import TheaterLockService

logger = structlog.get_logger(__name__)


class BackgroundService:
    """Periodically releases theater locks whose TTL has passed."""

    def __init__(self, interval_seconds: int) -> None:
        self.interval_seconds = interval_seconds
        self._tasks: List[asyncio.Task] = []
        self._running = False

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tasks.append(asyncio.create_task(self._run()))
        logger.info("background_service_started", interval_seconds=self.interval_seconds)

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._running = False
        logger.info("background_service_stopped")

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await asyncio.to_thread(self._cleanup_once)
            except asyncio.CancelledError:
                break
            except Exception:  # noqa: BLE001
                logger.exception("background_cleanup_failed")

    def _cleanup_once(self) -> int:
        clock = SystemClock()
        with get_session() as session:
            audit = SessionAuditService(session, clock=clock, context={"source": "background"})
            return TheaterLockService(session, clock, audit).release_expired_locks()


_service: BackgroundService | None = None


def start_background_services() -> None:
    global _service
    if _service is None:
        _service = BackgroundService(settings.background_cleanup_interval_seconds)
        _service.start()


async def stop_background_services() -> None:
    global _service
    if _service is not None:
        service = _service
        _service = None
        await service.shutdown()
