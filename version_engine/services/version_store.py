"""
Version Store: queries over content_versions / version_audit_log.
All functions take the session first and never commit; VersionManager owns transaction boundaries.
for_update=True adds SELECT ... FOR UPDATE (ignored by SQLite, which locks the whole database on write).
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import Select, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from version_engine.domain import ContentType, VersionScope, VersionType
from version_engine.models import AuditLogEntry, ContentVersion
from version_engine.schemas.version import HistoryOptions, VersionMetrics


def _in_scope(q: Select, scope: VersionScope) -> Select:
    return q.where(
        ContentVersion.tenant_id == scope.tenant_id,
        ContentVersion.content_type == scope.content_type.value,
        ContentVersion.content_id == scope.content_id,
    )


async def get_version(
    db: AsyncSession,
    version_id: UUID,
    tenant_id: Optional[UUID] = None,
    for_update: bool = False,
) -> Optional[ContentVersion]:
    q = select(ContentVersion).where(ContentVersion.id == version_id)
    if tenant_id is not None:
        q = q.where(ContentVersion.tenant_id == tenant_id)
    if for_update:
        q = q.with_for_update()
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def get_latest_version(db: AsyncSession, scope: VersionScope) -> Optional[ContentVersion]:
    """Highest version_number in scope, any version_type."""
    q = _in_scope(select(ContentVersion), scope).order_by(ContentVersion.version_number.desc()).limit(1)
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def get_current_draft(
    db: AsyncSession, scope: VersionScope, for_update: bool = False
) -> Optional[ContentVersion]:
    q = _in_scope(select(ContentVersion), scope).where(ContentVersion.is_current_draft.is_(True))
    if for_update:
        q = q.with_for_update()
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def get_current_published(
    db: AsyncSession, scope: VersionScope, for_update: bool = False
) -> Optional[ContentVersion]:
    q = _in_scope(select(ContentVersion), scope).where(ContentVersion.is_current_published.is_(True))
    if for_update:
        q = q.with_for_update()
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def clear_current_draft(db: AsyncSession, scope: VersionScope) -> Optional[ContentVersion]:
    """Drop the current-draft flag from whichever version holds it. Flushes so a new holder can be inserted."""
    holder = await get_current_draft(db, scope, for_update=True)
    if holder is not None:
        holder.is_current_draft = False
        await db.flush()
    return holder


async def count_versions(db: AsyncSession, scope: VersionScope) -> int:
    q = _in_scope(select(func.count(ContentVersion.id)), scope)
    r = await db.execute(q)
    return r.scalar() or 0


async def get_latest_content_hash(db: AsyncSession, scope: VersionScope) -> Optional[str]:
    """Hash of the most recent version in scope (any type) that has one."""
    q = (
        _in_scope(select(ContentVersion.content_hash), scope)
        .where(ContentVersion.content_hash.isnot(None))
        .order_by(ContentVersion.version_number.desc())
        .limit(1)
    )
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def get_latest_manual_version(db: AsyncSession, scope: VersionScope) -> Optional[ContentVersion]:
    """Most recent draft/published version (auto-saves excluded)."""
    q = (
        _in_scope(select(ContentVersion), scope)
        .where(ContentVersion.version_type != VersionType.AUTO_SAVE.value)
        .order_by(ContentVersion.version_number.desc())
        .limit(1)
    )
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def get_latest_auto_save(
    db: AsyncSession, scope: VersionScope, since: Optional[datetime] = None
) -> Optional[ContentVersion]:
    q = _in_scope(select(ContentVersion), scope).where(
        ContentVersion.version_type == VersionType.AUTO_SAVE.value
    )
    if since is not None:
        q = q.where(ContentVersion.created_at >= since)
    q = q.order_by(ContentVersion.version_number.desc()).limit(1)
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def has_manual_version_after(db: AsyncSession, scope: VersionScope, version_number: int) -> bool:
    q = _in_scope(select(func.count(ContentVersion.id)), scope).where(
        ContentVersion.version_type != VersionType.AUTO_SAVE.value,
        ContentVersion.version_number > version_number,
    )
    r = await db.execute(q)
    return (r.scalar() or 0) > 0


async def get_max_version_number(db: AsyncSession, scope: VersionScope) -> int:
    q = _in_scope(select(func.max(ContentVersion.version_number)), scope)
    r = await db.execute(q)
    return r.scalar() or 0


async def get_version_history(
    db: AsyncSession, scope: VersionScope, options: HistoryOptions
) -> Tuple[List[ContentVersion], int]:
    """Page of versions plus the total matching the filters."""
    conditions = []
    if options.version_type is not None:
        conditions.append(ContentVersion.version_type == options.version_type.value)
    elif options.published_only:
        conditions.append(ContentVersion.version_type == VersionType.PUBLISHED.value)
    elif not options.include_auto_saves:
        conditions.append(ContentVersion.version_type != VersionType.AUTO_SAVE.value)

    count_q = _in_scope(select(func.count(ContentVersion.id)), scope).where(*conditions)
    total = (await db.execute(count_q)).scalar() or 0

    column = ContentVersion.created_at if options.order_by == "created_at" else ContentVersion.version_number
    ordering = column.asc() if options.order_direction == "asc" else column.desc()
    q = (
        _in_scope(select(ContentVersion), scope)
        .where(*conditions)
        .order_by(ordering, ContentVersion.version_number.desc())
        .limit(options.limit)
        .offset(options.offset)
    )
    r = await db.execute(q)
    return list(r.scalars().all()), total


async def get_versions_by_actor(
    db: AsyncSession, tenant_id: UUID, actor_id: str, limit: int = 50
) -> List[ContentVersion]:
    q = (
        select(ContentVersion)
        .where(ContentVersion.tenant_id == tenant_id, ContentVersion.created_by == actor_id)
        .order_by(ContentVersion.created_at.desc(), ContentVersion.version_number.desc())
        .limit(limit)
    )
    r = await db.execute(q)
    return list(r.scalars().all())


async def get_version_metrics(
    db: AsyncSession,
    tenant_id: UUID,
    content_type: Optional[ContentType] = None,
    content_id: Optional[UUID] = None,
) -> VersionMetrics:
    """Counts per version_type, last activity and approximate payload size."""
    conditions = [ContentVersion.tenant_id == tenant_id]
    if content_type is not None:
        conditions.append(ContentVersion.content_type == content_type.value)
    if content_id is not None:
        conditions.append(ContentVersion.content_id == content_id)

    q = (
        select(ContentVersion.version_type, func.count(ContentVersion.id), func.max(ContentVersion.created_at))
        .where(*conditions)
        .group_by(ContentVersion.version_type)
    )
    r = await db.execute(q)
    counts: Dict[str, int] = {}
    last_activity: Optional[datetime] = None
    for version_type, count, latest in r.all():
        counts[version_type] = count
        if latest is not None and (last_activity is None or latest > last_activity):
            last_activity = latest

    size_q = select(
        func.coalesce(func.sum(func.length(ContentVersion.title)), 0),
        func.coalesce(func.sum(func.length(ContentVersion.body)), 0),
        func.coalesce(func.sum(func.length(ContentVersion.excerpt)), 0),
    ).where(*conditions)
    sizes = (await db.execute(size_q)).one()

    return VersionMetrics(
        total_versions=sum(counts.values()),
        draft_count=counts.get(VersionType.DRAFT.value, 0),
        published_count=counts.get(VersionType.PUBLISHED.value, 0),
        auto_save_count=counts.get(VersionType.AUTO_SAVE.value, 0),
        last_activity=last_activity,
        storage_size_bytes=int(sum(sizes)),
    )


async def insert_version(db: AsyncSession, **values: Any) -> ContentVersion:
    row = ContentVersion(**values)
    db.add(row)
    await db.flush()
    return row


async def delete_version(db: AsyncSession, row: ContentVersion) -> None:
    await db.delete(row)
    await db.flush()


async def delete_auto_saves_beyond(db: AsyncSession, scope: VersionScope, keep: int) -> int:
    """Delete auto-saves in scope except the `keep` most recent (created_at desc)."""
    stale_ids_q = (
        _in_scope(select(ContentVersion.id), scope)
        .where(ContentVersion.version_type == VersionType.AUTO_SAVE.value)
        .order_by(ContentVersion.created_at.desc(), ContentVersion.version_number.desc())
        .offset(keep)
    )
    stale_ids = list((await db.execute(stale_ids_q)).scalars().all())
    if not stale_ids:
        return 0
    await db.execute(
        delete(ContentVersion)
        .where(ContentVersion.id.in_(stale_ids))
        .execution_options(synchronize_session=False)
    )
    return len(stale_ids)


async def delete_auto_saves_older_than(
    db: AsyncSession, cutoff: datetime, scope: Optional[VersionScope] = None
) -> int:
    """Time-based sweep; tenant-wide when scope is None."""
    q = delete(ContentVersion).where(
        ContentVersion.version_type == VersionType.AUTO_SAVE.value,
        ContentVersion.created_at < cutoff,
    )
    if scope is not None:
        q = q.where(
            ContentVersion.tenant_id == scope.tenant_id,
            ContentVersion.content_type == scope.content_type.value,
            ContentVersion.content_id == scope.content_id,
        )
    r = await db.execute(q.execution_options(synchronize_session=False))
    return r.rowcount or 0


async def insert_audit_entry(db: AsyncSession, **values: Any) -> AuditLogEntry:
    entry = AuditLogEntry(**values)
    db.add(entry)
    await db.flush()
    return entry


async def list_audit_entries(
    db: AsyncSession,
    tenant_id: UUID,
    version_id: Optional[UUID] = None,
    limit: int = 50,
) -> List[AuditLogEntry]:
    """Audit rows of a tenant, newest first."""
    q = select(AuditLogEntry).where(AuditLogEntry.tenant_id == tenant_id)
    if version_id is not None:
        q = q.where(AuditLogEntry.version_id == version_id)
    q = q.order_by(AuditLogEntry.created_at.desc()).limit(limit)
    r = await db.execute(q)
    return list(r.scalars().all())
