"""
Background maintenance: expired auto-save sweep and cache eviction.
Runs inside the FastAPI process. ENV: MAINTENANCE_ENABLED, MAINTENANCE_INTERVAL_SECONDS.
The cache sweep only bounds memory; correctness never depends on it.
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

from version_engine.infrastructure.version_cache import VersionCache
from version_engine.logging_config import get_logger
from version_engine.services.auto_save_service import AutoSaveManager

logger = get_logger(__name__)


class MaintenanceWorker:
    def __init__(self, auto_saves: AutoSaveManager, cache: VersionCache, interval_seconds: int = 300) -> None:
        self.auto_saves = auto_saves
        self.cache = cache
        self.interval_seconds = max(1, interval_seconds)
        self.last_tick_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> dict:
        """One round: sweep auto-saves past retention, evict expired cache entries."""
        self.last_tick_at = datetime.now(timezone.utc)
        swept = await self.auto_saves.sweep_expired_auto_saves()
        evicted = await self.cache.evict_expired()
        logger.info("maintenance.tick", swept_auto_saves=swept, evicted_cache_entries=evicted)
        return {"swept_auto_saves": swept, "evicted_cache_entries": evicted}

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.warning("maintenance.loop_error", error=str(e))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("maintenance.started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("maintenance.stopped")
