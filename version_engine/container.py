"""Wires the engine's collaborators from settings. One EngineServices per process (FastAPI app.state)."""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from version_engine.config import Settings, get_settings
from version_engine.infrastructure.version_cache import VersionCache, build_version_cache
from version_engine.services.access_service import DbTenantAccessChecker, TenantAccessChecker
from version_engine.services.audit_service import AuditLogger
from version_engine.services.auto_save_service import AutoSaveManager
from version_engine.services.event_bus import VersionEventBus, WebhookEventSink
from version_engine.services.maintenance_worker import MaintenanceWorker
from version_engine.services.version_manager import VersionManager


@dataclass
class EngineServices:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    versions: VersionManager
    auto_saves: AutoSaveManager
    events: VersionEventBus
    cache: VersionCache
    maintenance: MaintenanceWorker

    async def shutdown(self) -> None:
        await self.maintenance.stop()
        await self.auto_saves.drain()
        await self.events.drain()
        await self.cache.close()


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[Settings] = None,
    access: Optional[TenantAccessChecker] = None,
    cache: Optional[VersionCache] = None,
) -> EngineServices:
    settings = settings if settings is not None else get_settings()
    cache = cache if cache is not None else build_version_cache(settings)
    events = VersionEventBus()
    if settings.event_webhook_url:
        events.on_any(WebhookEventSink(settings.event_webhook_url, settings.event_webhook_timeout_seconds))
    versions = VersionManager(
        session_factory,
        settings=settings,
        access=access if access is not None else DbTenantAccessChecker(session_factory),
        events=events,
        cache=cache,
        audit=AuditLogger(session_factory),
    )
    auto_saves = AutoSaveManager(versions)
    maintenance = MaintenanceWorker(auto_saves, cache, interval_seconds=settings.maintenance_interval_seconds)
    return EngineServices(
        settings=settings,
        session_factory=session_factory,
        versions=versions,
        auto_saves=auto_saves,
        events=events,
        cache=cache,
        maintenance=maintenance,
    )
