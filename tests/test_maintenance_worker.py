"""
Maintenance worker: one tick sweeps expired auto-saves and evicts expired cache entries.
Run: pytest tests/test_maintenance_worker.py -v
"""
from datetime import timedelta

import pytest
from sqlalchemy import update

from version_engine.db import utcnow
from version_engine.models import ContentVersion
from version_engine.schemas.version import VersionCreate


@pytest.mark.asyncio
async def test_tick_sweeps_and_evicts(services, auto_saves, actor, scope, session_factory) -> None:
    stored = (await auto_saves.auto_save(VersionCreate(title="Old"), actor, scope)).data
    await auto_saves.drain()
    async with session_factory() as db:
        await db.execute(
            update(ContentVersion)
            .where(ContentVersion.id == stored.id)
            .values(created_at=utcnow() - timedelta(days=45))
        )
        await db.commit()
    await services.cache.set("draft:stale", "x", ttl_seconds=0)

    result = await services.maintenance.tick()

    assert result == {"swept_auto_saves": 1, "evicted_cache_entries": 1}
    assert services.maintenance.last_tick_at is not None


@pytest.mark.asyncio
async def test_start_and_stop(services) -> None:
    services.maintenance.start()
    assert services.maintenance.running
    await services.maintenance.stop()
    assert not services.maintenance.running
