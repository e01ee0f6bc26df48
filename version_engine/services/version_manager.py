"""
Version Lifecycle Manager: create / publish / revert / delete / compare and pointer lookups.

Every public operation returns a ServiceResult; expected failures never raise out of this class.
Mutations run in one transaction per operation (isolation from settings), serialized per scope
by an in-process asyncio.Lock and, across processes, by row locks, unique indexes and bounded
retry on serialization conflicts. Audit, events, quota and cache invalidation follow the commit
and can never undo it.
"""
import asyncio
import json
import random
import weakref
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from version_engine.config import Settings, get_settings
from version_engine.db import utcnow
from version_engine.domain import Actor, AuditAction, ContentType, VersionScope, VersionType
from version_engine.errors import (
    AccessDenied,
    ConflictRetryable,
    InvalidState,
    LimitExceeded,
    NotFound,
    OperationTimeout,
    StoreUnavailable,
    ValidationFailed,
    VersionError,
)
from version_engine.infrastructure.version_cache import InMemoryVersionCache, VersionCache
from version_engine.logging_config import get_logger
from version_engine.schemas.common import ServiceResult
from version_engine.schemas.version import (
    ChangeStatistics,
    DiffGranularity,
    HistoryOptions,
    TextDiff,
    VersionComparison,
    VersionCreate,
    VersionFeedback,
    VersionHistory,
    VersionMetrics,
    VersionOut,
    to_version_out,
)
from version_engine.services import diff_engine, diff_export, text_diff, version_store
from version_engine.services.access_service import DbTenantAccessChecker, TenantAccessChecker
from version_engine.services.audit_service import AuditLogger
from version_engine.services.content_hash import hash_snapshot
from version_engine.services.content_projection import ContentProjection, SqlContentProjection
from version_engine.services.event_bus import (
    EVENT_CREATED,
    EVENT_DELETED,
    EVENT_PUBLISHED,
    EVENT_REVERTED,
    EVENT_UPDATED,
    VersionEventBus,
)
from version_engine.services.quota_reporter import LoggingQuotaReporter, QuotaReporter
from version_engine.services.sanitizer import BleachSanitizer, Sanitizer
from version_engine.services.version_allocator import allocate_version_number

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, unique_violation
CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "23505"})
SQLITE_CONFLICT_MARKERS = ("database is locked", "unique constraint failed")


def is_conflict_error(exc: DBAPIError) -> bool:
    """True for errors a retry of the whole transaction can resolve."""
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code in CONFLICT_SQLSTATES:
            return True
    message = str(orig).lower()
    return any(marker in message for marker in SQLITE_CONFLICT_MARKERS)


def scope_of(version: VersionOut) -> VersionScope:
    return VersionScope(
        tenant_id=version.tenant_id,
        content_type=ContentType(version.content_type),
        content_id=version.content_id,
    )


class ScopeLocks:
    """One asyncio.Lock per scope key; unused locks are garbage collected."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


class VersionManager:
    """Owns the version state machine and transaction boundaries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        access: Optional[TenantAccessChecker] = None,
        sanitizer: Optional[Sanitizer] = None,
        projection: Optional[ContentProjection] = None,
        events: Optional[VersionEventBus] = None,
        cache: Optional[VersionCache] = None,
        quota: Optional[QuotaReporter] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.session_factory = session_factory
        self.access = access if access is not None else DbTenantAccessChecker(session_factory)
        self.sanitizer = sanitizer if sanitizer is not None else BleachSanitizer()
        self.projection = projection if projection is not None else SqlContentProjection()
        self.events = events if events is not None else VersionEventBus()
        self.cache = cache if cache is not None else InMemoryVersionCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            max_entries=self.settings.cache_max_entries,
        )
        self.quota = quota if quota is not None else LoggingQuotaReporter()
        self.audit = audit if audit is not None else AuditLogger(session_factory)
        self._locks = ScopeLocks()
        # Bumped on every invalidation; a read only fills the cache if nothing changed while it loaded.
        self._generations: Dict[str, int] = {}

    # ------------------------------------------------------------------ public API

    async def create_version(
        self,
        payload: VersionCreate,
        actor: Actor,
        scope: VersionScope,
        version_type: VersionType = VersionType.DRAFT,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        """New draft (or auto-save) version. Diffed against the latest version in scope."""

        async def work() -> ServiceResult:
            version, _ = await self._create(payload, actor, scope, version_type)
            return ServiceResult.ok(version, message=f"Version {version.version_number} created")

        return await self.run_operation("create_version", work, timeout)

    async def create_draft(
        self,
        payload: VersionCreate,
        actor: Actor,
        scope: VersionScope,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        """Draft that becomes the scope's current draft."""
        return await self.create_version(
            payload.model_copy(update={"is_current_draft": True}),
            actor,
            scope,
            VersionType.DRAFT,
            timeout,
        )

    async def create_auto_save(
        self,
        payload: VersionCreate,
        actor: Actor,
        scope: VersionScope,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        """
        Auto-save version unless the latest hashed version in scope already has the same hash.
        payload.content_hash is used as given; otherwise the hash is taken over the sanitized
        content merged onto the latest version, the same way drafts are hashed. The check runs
        in the create transaction, under the scope lock.
        """

        async def work() -> ServiceResult:
            version, content_hash = await self._create(
                payload.model_copy(update={"is_current_draft": False}),
                actor,
                scope,
                VersionType.AUTO_SAVE,
                dedup=True,
            )
            if version is None:
                logger.info("auto_save.skipped", scope=scope.key, content_hash=content_hash)
                return ServiceResult.skip(
                    "No changes detected, auto-save skipped",
                    metadata={"content_hash": content_hash},
                )
            return ServiceResult.ok(version, metadata={"content_hash": content_hash})

        return await self.run_operation("auto_save", work, timeout)

    async def publish_version(
        self, version_id: UUID, actor: Actor, timeout: Optional[float] = None
    ) -> ServiceResult:
        async def work() -> ServiceResult:
            version = await self._publish(version_id, actor)
            return ServiceResult.ok(version, message=f"Version {version.version_number} published")

        return await self.run_operation("publish_version", work, timeout)

    async def revert_to_version(
        self, version_id: UUID, actor: Actor, timeout: Optional[float] = None
    ) -> ServiceResult:
        """Clone an older version into a new one and publish it. The old id is never resurrected."""

        async def work() -> ServiceResult:
            target = await self._load(version_id)
            await self.require_access(target.tenant_id, actor)
            scope = scope_of(target)
            payload = VersionCreate(
                title=target.title,
                slug=target.slug,
                body=target.body,
                excerpt=target.excerpt,
                structured_data=target.structured_data,
                metadata=target.metadata,
                change_summary=f"Reverted to version {target.version_number}",
            )
            created, _ = await self._create(payload, actor, scope, VersionType.DRAFT)
            published = await self._publish(created.id, actor)
            details = {
                "reverted_from_version_id": str(target.id),
                "reverted_from_version_number": target.version_number,
                "new_version_number": published.version_number,
            }
            await self.audit.record(
                AuditAction.REVERTED,
                tenant_id=scope.tenant_id,
                actor=actor,
                version_id=published.id,
                details=details,
                title=published.title,
                body=published.body,
                excerpt=published.excerpt,
            )
            self._emit(EVENT_REVERTED, published, actor, **details)
            logger.info("version.reverted", scope=scope.key, **details)
            return ServiceResult.ok(
                published,
                message=f"Reverted to version {target.version_number}",
            )

        return await self.run_operation("revert_to_version", work, timeout)

    async def delete_version(
        self, version_id: UUID, actor: Actor, timeout: Optional[float] = None
    ) -> ServiceResult:
        """Hard delete. Published versions are immutable and never deleted."""

        async def work() -> ServiceResult:
            version = await self._load(version_id)
            await self.require_access(version.tenant_id, actor)
            self._ensure_deletable(version)
            scope = scope_of(version)

            async def tx(db: AsyncSession) -> VersionOut:
                row = await version_store.get_version(db, version_id, for_update=True)
                if row is None:
                    raise NotFound()
                out = to_version_out(row)
                self._ensure_deletable(out)
                await version_store.delete_version(db, row)
                return out

            deleted = await self._in_transaction(scope, self.settings.create_isolation_level, tx)
            await self.audit.record(
                AuditAction.DELETED,
                tenant_id=scope.tenant_id,
                actor=actor,
                version_id=deleted.id,
                details={"version_number": deleted.version_number, "version_type": deleted.version_type.value},
                title=deleted.title,
                body=deleted.body,
                excerpt=deleted.excerpt,
            )
            await self.invalidate_scope(scope)
            self._emit(EVENT_DELETED, deleted, actor)
            logger.info("version.deleted", scope=scope.key, version_number=deleted.version_number)
            return ServiceResult.ok(None, message=f"Version {deleted.version_number} deleted")

        return await self.run_operation("delete_version", work, timeout)

    async def compare_versions(
        self,
        version_a_id: UUID,
        version_b_id: UUID,
        tenant_id: Optional[UUID] = None,
        granularity: DiffGranularity = "line",
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        """Field diffs plus a body text diff and change statistics. Text diffs are cached per pair."""

        async def work() -> ServiceResult:
            return ServiceResult.ok(await self._compare(version_a_id, version_b_id, tenant_id, granularity))

        return await self.run_operation("compare_versions", work, timeout)

    async def export_comparison(
        self,
        version_a_id: UUID,
        version_b_id: UUID,
        fmt: str = "json",
        tenant_id: Optional[UUID] = None,
        granularity: DiffGranularity = "line",
        include_statistics: bool = True,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        """Comparison rendered as json or html text."""

        async def work() -> ServiceResult:
            if fmt not in diff_export.EXPORT_FORMATS:
                raise ValidationFailed(f"Unsupported export format: {fmt}")
            comparison = await self._compare(version_a_id, version_b_id, tenant_id, granularity)
            rendered = diff_export.export_comparison(comparison, fmt, include_statistics)
            return ServiceResult.ok(rendered, metadata={"format": fmt})

        return await self.run_operation("export_comparison", work, timeout)

    async def record_feedback(
        self,
        version_id: UUID,
        feedback: VersionFeedback,
        actor: Actor,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        """Feedback on a version is kept in the audit trail; the version itself is not touched."""

        async def work() -> ServiceResult:
            version = await self._load(version_id)
            await self.require_access(version.tenant_id, actor)
            details = {"version_number": version.version_number, **feedback.model_dump(exclude_none=True)}
            entry = await self.audit.record(
                AuditAction.FEEDBACK,
                tenant_id=version.tenant_id,
                actor=actor,
                version_id=version.id,
                details=details,
                title=feedback.comment,
                body=feedback.suggestion_snapshot,
                excerpt=feedback.prompt_snapshot,
            )
            if entry is None:
                raise StoreUnavailable()
            logger.info(
                "version.feedback_recorded",
                version_id=str(version.id),
                version_number=version.version_number,
                signal=feedback.signal,
            )
            return ServiceResult.ok(version, message="Feedback recorded")

        return await self.run_operation("record_feedback", work, timeout)

    async def get_version(
        self, version_id: UUID, tenant_id: Optional[UUID] = None, timeout: Optional[float] = None
    ) -> ServiceResult:
        async def work() -> ServiceResult:
            return ServiceResult.ok(await self._load(version_id, tenant_id))

        return await self.run_operation("get_version", work, timeout)

    async def get_latest_draft(self, scope: VersionScope, timeout: Optional[float] = None) -> ServiceResult:
        """Current draft or data=None. "No draft" is not a failure."""

        async def work() -> ServiceResult:
            return ServiceResult.ok(await self._cached_pointer("draft", scope, version_store.get_current_draft))

        return await self.run_operation("get_latest_draft", work, timeout)

    async def get_published_version(self, scope: VersionScope, timeout: Optional[float] = None) -> ServiceResult:
        async def work() -> ServiceResult:
            return ServiceResult.ok(
                await self._cached_pointer("published", scope, version_store.get_current_published)
            )

        return await self.run_operation("get_published_version", work, timeout)

    async def get_version_history(
        self,
        scope: VersionScope,
        options: Optional[HistoryOptions] = None,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        options = options or HistoryOptions()

        async def work() -> ServiceResult:
            async with self.session_factory() as db:
                rows, total = await version_store.get_version_history(db, scope, options)
                versions = [to_version_out(row) for row in rows]
            history = VersionHistory(versions=versions, total=total, limit=options.limit, offset=options.offset)
            return ServiceResult.ok(history)

        return await self.run_operation("get_version_history", work, timeout)

    async def get_versions_by_actor(
        self,
        tenant_id: UUID,
        actor_id: str,
        limit: int = 50,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        async def work() -> ServiceResult:
            async with self.session_factory() as db:
                rows = await version_store.get_versions_by_actor(db, tenant_id, actor_id, limit=limit)
                versions = [to_version_out(row) for row in rows]
            return ServiceResult.ok(versions)

        return await self.run_operation("get_versions_by_actor", work, timeout)

    async def get_version_metrics(
        self,
        tenant_id: UUID,
        content_type: Optional[ContentType] = None,
        content_id: Optional[UUID] = None,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        key = metrics_key(tenant_id, content_type, content_id)

        async def work() -> ServiceResult:
            cached = await self.cache.get(key)
            if cached is not None:
                return ServiceResult.ok(VersionMetrics.model_validate_json(cached))
            generation = self._generation(str(tenant_id))
            async with self.session_factory() as db:
                metrics = await version_store.get_version_metrics(db, tenant_id, content_type, content_id)
            if self._generation(str(tenant_id)) == generation:
                await self.cache.set(key, metrics.model_dump_json())
            return ServiceResult.ok(metrics)

        return await self.run_operation("get_version_metrics", work, timeout)

    async def content_hash_for(
        self, payload: VersionCreate, scope: VersionScope, timeout: Optional[float] = None
    ) -> ServiceResult:
        """
        Hash the engine would store for payload saved now: sanitized, merged onto the latest
        version. Editors compare against this in has_unsaved_changes.
        """

        async def work() -> ServiceResult:
            if payload.content_hash:
                return ServiceResult.ok(payload.content_hash)
            provided = self._sanitize(payload.provided_content())
            async with self.session_factory() as db:
                prior = await version_store.get_latest_version(db, scope)
                prior_snapshot = diff_engine.snapshot_of(prior) if prior is not None else {}
            return ServiceResult.ok(hash_snapshot({**prior_snapshot, **provided}))

        return await self.run_operation("content_hash_for", work, timeout)

    def scope_lock(self, scope: VersionScope) -> asyncio.Lock:
        return self._locks.get(scope.key)

    async def invalidate_scope(self, scope: VersionScope) -> None:
        keys = [
            f"draft:{scope.key}",
            f"published:{scope.key}",
            metrics_key(scope.tenant_id, scope.content_type, scope.content_id),
            metrics_key(scope.tenant_id, scope.content_type, None),
            metrics_key(scope.tenant_id, None, scope.content_id),
            metrics_key(scope.tenant_id, None, None),
        ]
        self._bump_generation(scope.key, str(scope.tenant_id))
        try:
            await self.cache.delete_many(keys)
        except Exception as e:
            logger.warning("cache.invalidate_failed", scope=scope.key, error=str(e))

    # ------------------------------------------------------------------ operation bodies

    async def _create(
        self,
        payload: VersionCreate,
        actor: Actor,
        scope: VersionScope,
        version_type: VersionType,
        dedup: bool = False,
    ) -> Tuple[Optional[VersionOut], str]:
        """
        Returns (version, content_hash). With dedup, version is None when the latest hashed version
        in scope already has this hash. The hash is the caller's, or hash_snapshot of the sanitized
        content merged over the latest version.
        """
        if version_type == VersionType.PUBLISHED:
            raise ValidationFailed("New versions are drafts or auto-saves; use publish_version to publish")
        await self.require_access(scope.tenant_id, actor)

        provided = self._sanitize(payload.provided_content())
        if "title" in provided:
            self._validate_title(provided["title"])
        change_summary = self.sanitizer.clean(payload.change_summary) if payload.change_summary else None
        make_current = payload.is_current_draft and version_type == VersionType.DRAFT

        async def tx(db: AsyncSession) -> Tuple[Optional[VersionOut], int, str]:
            prior = await version_store.get_latest_version(db, scope)
            prior_snapshot = diff_engine.snapshot_of(prior) if prior is not None else None
            content = {**(prior_snapshot or {}), **provided}
            content_hash = payload.content_hash or hash_snapshot(content)
            if dedup:
                latest_hash = await version_store.get_latest_content_hash(db, scope)
                if latest_hash == content_hash:
                    return None, 0, content_hash
            count = await version_store.count_versions(db, scope)
            if count >= self.settings.max_versions_per_content:
                raise LimitExceeded()

            self._validate_title(content.get("title"))
            changes = diff_engine.diff(prior_snapshot, provided)

            number = await allocate_version_number(db, scope)
            if make_current:
                await version_store.clear_current_draft(db, scope)
            row = await version_store.insert_version(
                db,
                tenant_id=scope.tenant_id,
                content_type=scope.content_type.value,
                content_id=scope.content_id,
                version_number=number,
                version_type=version_type.value,
                is_current_draft=make_current,
                is_current_published=False,
                title=content["title"],
                slug=content.get("slug"),
                body=content.get("body"),
                excerpt=content.get("excerpt"),
                structured_data=content.get("structured_data"),
                metadata_=content.get("metadata"),
                change_summary=change_summary,
                changed_fields=diff_engine.changed_field_names(changes),
                content_hash=content_hash,
                created_by=actor.actor_id,
            )
            return to_version_out(row), count + 1, content_hash

        version, version_count, content_hash = await self._in_transaction(
            scope, self.settings.create_isolation_level, tx
        )
        if version is None:
            return None, content_hash

        is_auto_save = version_type == VersionType.AUTO_SAVE
        await self.audit.record(
            AuditAction.AUTO_SAVED if is_auto_save else AuditAction.CREATED,
            tenant_id=scope.tenant_id,
            actor=actor,
            version_id=version.id,
            details={
                "version_number": version.version_number,
                "version_type": version.version_type.value,
                "changed_fields": version.changed_fields,
                "change_summary": version.change_summary,
            },
            title=version.title,
            body=version.body,
            excerpt=version.excerpt,
        )
        await self.invalidate_scope(scope)
        self._emit(EVENT_UPDATED if is_auto_save else EVENT_CREATED, version, actor)
        await self._report_quota(scope, version_count)
        logger.info(
            "version.created",
            scope=scope.key,
            version_number=version.version_number,
            version_type=version.version_type.value,
            changed_fields=version.changed_fields,
        )
        return version, content_hash

    async def _compare(
        self,
        version_a_id: UUID,
        version_b_id: UUID,
        tenant_id: Optional[UUID],
        granularity: DiffGranularity,
    ) -> VersionComparison:
        a = await self._load(version_a_id, tenant_id, missing_message="First version not found")
        b = await self._load(version_b_id, tenant_id, missing_message="Second version not found")
        diffs = diff_engine.compare_snapshots(diff_engine.snapshot_of(a), diff_engine.snapshot_of(b))

        # Version content never changes after insert, so the pair's text diff is safe to reuse.
        key = f"diff:{a.id}:{b.id}:{granularity}"
        cached = await self.cache.get(key)
        if cached is not None:
            stored = json.loads(cached)
            body_diff = TextDiff.model_validate(stored["text_diff"])
            statistics = ChangeStatistics.model_validate(stored["statistics"])
        else:
            body_diff = text_diff.generate_text_diff(a.body, b.body, granularity)
            statistics = text_diff.change_statistics(body_diff, diffs, a.body, b.body)
            await self.cache.set(
                key,
                json.dumps(
                    {"text_diff": body_diff.model_dump(mode="json"), "statistics": statistics.model_dump(mode="json")}
                ),
                ttl_seconds=self.settings.diff_cache_ttl_seconds,
            )
        return VersionComparison(
            version_a=a,
            version_b=b,
            diffs=diffs,
            summary=diff_engine.summarize(diffs),
            text_diff=body_diff,
            statistics=statistics,
        )

    async def _publish(self, version_id: UUID, actor: Actor) -> VersionOut:
        version = await self._load(version_id)
        await self.require_access(version.tenant_id, actor)
        scope = scope_of(version)

        async def tx(db: AsyncSession) -> Tuple[VersionOut, bool, Optional[int]]:
            # Pointer state is read inside the transaction, never from cache.
            target = await version_store.get_version(db, version_id, for_update=True)
            if target is None:
                raise NotFound()
            if target.version_type == VersionType.AUTO_SAVE.value:
                raise InvalidState("Auto-save versions cannot be published")
            if target.is_current_published:
                return to_version_out(target), False, None

            previous = await version_store.get_current_published(db, scope, for_update=True)
            previous_number = None
            if previous is not None:
                previous_number = previous.version_number
                previous.is_current_published = False
                await db.flush()

            target.is_current_published = True
            target.is_current_draft = False
            target.version_type = VersionType.PUBLISHED.value
            target.published_by = actor.actor_id
            target.published_at = utcnow()
            await db.flush()
            await self.projection.sync(db, target)
            return to_version_out(target), True, previous_number

        published, changed, previous_number = await self._in_transaction(
            scope, self.settings.publish_isolation_level, tx
        )
        if not changed:
            logger.info("version.already_published", scope=scope.key, version_number=published.version_number)
            return published

        await self.audit.record(
            AuditAction.PUBLISHED,
            tenant_id=scope.tenant_id,
            actor=actor,
            version_id=published.id,
            details={
                "version_number": published.version_number,
                "previous_published_version_number": previous_number,
            },
            title=published.title,
            body=published.body,
            excerpt=published.excerpt,
        )
        await self.invalidate_scope(scope)
        self._emit(EVENT_PUBLISHED, published, actor, previous_published_version_number=previous_number)
        logger.info(
            "version.published",
            scope=scope.key,
            version_number=published.version_number,
            previous_version_number=previous_number,
        )
        return published

    # ------------------------------------------------------------------ helpers

    async def run_operation(
        self,
        operation: str,
        work: Callable[[], Awaitable[ServiceResult]],
        timeout: Optional[float],
    ) -> ServiceResult:
        """Apply the timeout and turn engine/store errors into result values."""
        limit = self.settings.operation_timeout_seconds if timeout is None else timeout
        try:
            return await asyncio.wait_for(self._guarded(operation, work), timeout=limit)
        except asyncio.TimeoutError:
            logger.warning("version.operation_timeout", operation=operation, timeout=limit)
            return ServiceResult.fail(OperationTimeout())

    async def _guarded(self, operation: str, work: Callable[[], Awaitable[ServiceResult]]) -> ServiceResult:
        try:
            return await work()
        except VersionError as e:
            logger.info("version.operation_rejected", operation=operation, error_code=e.code.value, error=e.message)
            return ServiceResult.fail(e)
        except (SQLAlchemyError, OSError) as e:
            logger.error("version.store_error", operation=operation, error=str(e))
            return ServiceResult.fail(StoreUnavailable())

    async def _in_transaction(
        self,
        scope: VersionScope,
        isolation_level: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """
        Run work(db) in one transaction under the scope lock. Commits on success, rolls back
        on any error. Conflicts are retried with jittered backoff, then raise ConflictRetryable.
        """
        attempts = max(1, self.settings.conflict_max_retries + 1)
        backoff = self.settings.conflict_retry_backoff_ms / 1000.0
        for attempt in range(1, attempts + 1):
            try:
                async with self.scope_lock(scope):
                    async with self.session_factory() as db:
                        async with db.begin():
                            await self._set_isolation(db, isolation_level)
                            return await work(db)
            except DBAPIError as e:
                if not is_conflict_error(e):
                    raise
                logger.warning(
                    "version.transaction_conflict",
                    scope=scope.key,
                    attempt=attempt,
                    error=str(e.orig),
                )
                if attempt == attempts:
                    raise ConflictRetryable() from e
                await asyncio.sleep(backoff * attempt * (1 + random.random()))
        raise ConflictRetryable()

    @staticmethod
    async def _set_isolation(db: AsyncSession, isolation_level: str) -> None:
        # SQLite serializes writers on its own and only knows SERIALIZABLE / AUTOCOMMIT.
        if db.get_bind().dialect.name == "sqlite":
            return
        await db.connection(execution_options={"isolation_level": isolation_level})

    async def _load(
        self,
        version_id: UUID,
        tenant_id: Optional[UUID] = None,
        missing_message: Optional[str] = None,
    ) -> VersionOut:
        async with self.session_factory() as db:
            row = await version_store.get_version(db, version_id, tenant_id=tenant_id)
            if row is None:
                raise NotFound(missing_message)
            return to_version_out(row)

    async def _cached_pointer(
        self,
        kind: str,
        scope: VersionScope,
        loader: Callable[[AsyncSession, VersionScope], Awaitable[Any]],
    ) -> Optional[VersionOut]:
        key = f"{kind}:{scope.key}"
        cached = await self.cache.get(key)
        if cached is not None:
            return VersionOut.model_validate_json(cached)
        generation = self._generation(scope.key)
        async with self.session_factory() as db:
            row = await loader(db, scope)
            version = to_version_out(row) if row is not None else None
        # A mutation committed during the load; its invalidation must win.
        if version is not None and self._generation(scope.key) == generation:
            await self.cache.set(key, version.model_dump_json())
        return version

    def _generation(self, key: str) -> int:
        return self._generations.get(key, 0)

    def _bump_generation(self, *keys: str) -> None:
        for key in keys:
            self._generations[key] = self._generations.get(key, 0) + 1

    async def require_access(self, tenant_id: UUID, actor: Actor) -> None:
        if not await self.access.has_access(tenant_id, actor.actor_id):
            logger.warning("version.access_denied", tenant_id=str(tenant_id), actor_id=actor.actor_id)
            raise AccessDenied()

    def _sanitize(self, provided: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = dict(provided)
        for field, rich in (("title", False), ("slug", False), ("body", True), ("excerpt", True)):
            value = cleaned.get(field)
            if isinstance(value, str):
                cleaned[field] = self.sanitizer.clean(value, rich=rich)
        return cleaned

    def _validate_title(self, title: Optional[str]) -> None:
        if title is None or not title.strip():
            raise ValidationFailed("Title is required")
        if len(title) > self.settings.max_title_length:
            raise ValidationFailed(f"Title must be at most {self.settings.max_title_length} characters")

    @staticmethod
    def _ensure_deletable(version: VersionOut) -> None:
        if version.is_current_published or version.version_type == VersionType.PUBLISHED:
            raise InvalidState("Published versions cannot be deleted")

    def _emit(self, event: str, version: VersionOut, actor: Actor, **extra: Any) -> None:
        payload = {
            "version_id": str(version.id),
            "tenant_id": str(version.tenant_id),
            "content_type": version.content_type.value,
            "content_id": str(version.content_id),
            "version_number": version.version_number,
            "version_type": version.version_type.value,
            "actor_id": actor.actor_id,
            **extra,
        }
        try:
            self.events.emit(event, payload)
        except Exception as e:
            logger.warning("event.emit_failed", event_name=event, error=str(e))

    async def _report_quota(self, scope: VersionScope, version_count: int) -> None:
        try:
            await self.quota.report(scope, version_count)
        except Exception as e:
            logger.warning("quota.report_failed", scope=scope.key, error=str(e))


def metrics_key(
    tenant_id: UUID,
    content_type: Optional[ContentType] = None,
    content_id: Optional[UUID] = None,
) -> str:
    return "metrics:{}:{}:{}".format(
        tenant_id,
        content_type.value if content_type is not None else "*",
        content_id if content_id is not None else "*",
    )
