"""
Version number allocation per scope (tenant, content type, content id).
One atomic upsert on version_counters inside the caller's transaction:
INSERT ... ON CONFLICT DO UPDATE SET last_number = last_number + 1 RETURNING last_number.
The counter only grows, so deleting or pruning the newest version never frees its number.
"""
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from version_engine.domain import VersionScope
from version_engine.logging_config import get_logger
from version_engine.models import VersionCounter

logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


async def allocate_version_number(db: AsyncSession, scope: VersionScope) -> int:
    """Next version_number for the scope. Must run in the same transaction as the insert."""
    dialect = db.get_bind().dialect.name
    insert_fn = _UPSERT_DIALECTS.get(dialect)
    if insert_fn is None:
        return await _allocate_locked(db, scope)

    stmt = insert_fn(VersionCounter).values(
        tenant_id=scope.tenant_id,
        content_type=scope.content_type.value,
        content_id=scope.content_id,
        last_number=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["tenant_id", "content_type", "content_id"],
        set_={"last_number": VersionCounter.last_number + 1},
    ).returning(VersionCounter.last_number)
    r = await db.execute(stmt)
    number = r.scalar_one()
    logger.debug("version.number_allocated", scope=scope.key, version_number=number)
    return number


async def _allocate_locked(db: AsyncSession, scope: VersionScope) -> int:
    """Read-modify-write under a row lock, for dialects without upsert."""
    r = await db.execute(
        select(VersionCounter)
        .where(
            VersionCounter.tenant_id == scope.tenant_id,
            VersionCounter.content_type == scope.content_type.value,
            VersionCounter.content_id == scope.content_id,
        )
        .with_for_update()
    )
    counter = r.scalar_one_or_none()
    if counter is None:
        counter = VersionCounter(
            tenant_id=scope.tenant_id,
            content_type=scope.content_type.value,
            content_id=scope.content_id,
            last_number=0,
        )
        db.add(counter)
    counter.last_number += 1
    await db.flush()
    return counter.last_number
