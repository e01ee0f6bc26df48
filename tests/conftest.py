"""
Shared fixtures: temporary SQLite database (aiosqlite), engine services wired with an
in-memory access list and cache. No external services needed.
"""
import uuid

import pytest
import pytest_asyncio

from version_engine.config import Settings
from version_engine.container import build_services
from version_engine.db import Base, build_engine, build_session_factory
from version_engine.domain import Actor, ContentType, VersionScope
from version_engine.infrastructure.version_cache import InMemoryVersionCache
from version_engine.models import Tenant
from version_engine.services.access_service import StaticTenantAccessChecker

ACTOR_ID = "editor-1"


@pytest.fixture
def settings_overrides() -> dict:
    """Override in a test module to change engine settings (ENV alias -> value)."""
    return {}


@pytest.fixture
def settings(tmp_path, settings_overrides) -> Settings:
    values = {
        "APP_ENV": "test",
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'versions.db'}",
        "MAINTENANCE_ENABLED": False,
        "CONFLICT_RETRY_BACKOFF_MS": 1,
    }
    values.update(settings_overrides)
    return Settings(**values)


@pytest_asyncio.fixture
async def session_factory(settings):
    engine = build_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def tenant_id(session_factory) -> uuid.UUID:
    async with session_factory() as db:
        tenant = Tenant(id=uuid.uuid4(), name="Versioning Test Tenant")
        db.add(tenant)
        await db.commit()
        return tenant.id


@pytest.fixture
def access(tenant_id) -> StaticTenantAccessChecker:
    return StaticTenantAccessChecker([(tenant_id, ACTOR_ID)])


@pytest_asyncio.fixture
async def services(session_factory, settings, access):
    engine_services = build_services(
        session_factory,
        settings=settings,
        access=access,
        cache=InMemoryVersionCache(ttl_seconds=settings.cache_ttl_seconds),
    )
    yield engine_services
    await engine_services.shutdown()


@pytest.fixture
def versions(services):
    return services.versions


@pytest.fixture
def auto_saves(services):
    return services.auto_saves


@pytest.fixture
def actor() -> Actor:
    return Actor(actor_id=ACTOR_ID, ip_address="127.0.0.1", user_agent="pytest")


@pytest.fixture
def scope(tenant_id) -> VersionScope:
    return VersionScope(tenant_id=tenant_id, content_type=ContentType.POST, content_id=uuid.uuid4())
