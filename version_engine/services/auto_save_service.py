"""
Auto-Save Manager: hash-based no-op detection and retention pruning on top of VersionManager.
- auto_save: skip when the content hash equals the latest hashed version in scope, otherwise
  store an auto_save version (never current) and prune in the background.
- Retention: keep the newest AUTO_SAVE_KEEP_COUNT per scope, drop anything older than
  AUTO_SAVE_RETENTION_DAYS. get_latest_auto_save only looks back AUTO_SAVE_VISIBILITY_DAYS.
"""
import asyncio
from datetime import timedelta
from typing import Optional, Set

from version_engine.db import utcnow
from version_engine.domain import Actor, VersionScope
from version_engine.logging_config import get_logger
from version_engine.schemas.common import ServiceResult
from version_engine.schemas.version import AutoSaveStatus, LatestAutoSave, PruneResult, VersionCreate, to_version_out
from version_engine.services import version_store
from version_engine.services.version_manager import VersionManager

logger = get_logger(__name__)


class AutoSaveManager:
    def __init__(self, versions: VersionManager) -> None:
        self.versions = versions
        self.settings = versions.settings
        self._prune_tasks: Set[asyncio.Task] = set()

    async def auto_save(
        self,
        payload: VersionCreate,
        actor: Actor,
        scope: VersionScope,
        timeout: Optional[float] = None,
    ) -> ServiceResult:
        """
        Returns the stored version, or success with skipped=True when nothing changed.
        Pruning runs after the save and never changes its result.
        """
        result = await self.versions.create_auto_save(payload, actor, scope, timeout=timeout)
        if result.success and not result.skipped:
            logger.info(
                "auto_save.stored",
                scope=scope.key,
                version_number=result.data.version_number,
                content_hash=result.data.content_hash,
            )
            self._schedule_prune(scope)
        return result

    async def has_unsaved_changes(self, content_hash: str, scope: VersionScope) -> ServiceResult:
        """
        True when the hash differs from the latest draft/published version, or none exists.
        Compare a hash obtained from content_hash_for, which normalizes content the way saves do.
        """
        status = await self.auto_save_status(content_hash, scope)
        if not status.success:
            return status
        return ServiceResult.ok(status.data.has_unsaved_changes)

    async def content_hash_for(self, payload: VersionCreate, scope: VersionScope) -> ServiceResult:
        return await self.versions.content_hash_for(payload, scope)

    async def auto_save_status(
        self, content_hash: str, scope: VersionScope, timeout: Optional[float] = None
    ) -> ServiceResult:
        async def work() -> ServiceResult:
            async with self.versions.session_factory() as db:
                baseline = await version_store.get_latest_manual_version(db, scope)
                latest_number = await version_store.get_max_version_number(db, scope)
            unsaved = baseline is None or baseline.content_hash != content_hash
            return ServiceResult.ok(AutoSaveStatus(has_unsaved_changes=unsaved, latest_version_number=latest_number))

        return await self.versions.run_operation("auto_save_status", work, timeout)

    async def get_latest_auto_save(self, scope: VersionScope, timeout: Optional[float] = None) -> ServiceResult:
        """Newest auto-save inside the visibility window, plus whether a manual save came after it."""

        async def work() -> ServiceResult:
            since = utcnow() - timedelta(days=self.settings.auto_save_visibility_days)
            async with self.versions.session_factory() as db:
                row = await version_store.get_latest_auto_save(db, scope, since=since)
                if row is None:
                    return ServiceResult.ok(LatestAutoSave())
                newer = await version_store.has_manual_version_after(db, scope, row.version_number)
                return ServiceResult.ok(LatestAutoSave(version=to_version_out(row), has_newer_manual_save=newer))

        return await self.versions.run_operation("get_latest_auto_save", work, timeout)

    async def prune_auto_saves(
        self, scope: VersionScope, actor: Actor, timeout: Optional[float] = None
    ) -> ServiceResult:
        """Explicit cleanup: keep-N sweep plus time-based sweep for one scope."""

        async def work() -> ServiceResult:
            await self.versions.require_access(scope.tenant_id, actor)
            deleted = await self._prune(scope)
            return ServiceResult.ok(PruneResult(deleted_count=deleted), message=f"Deleted {deleted} auto-saves")

        return await self.versions.run_operation("prune_auto_saves", work, timeout)

    async def sweep_expired_auto_saves(self) -> int:
        """Tenant-wide time-based sweep (maintenance worker)."""
        cutoff = utcnow() - timedelta(days=self.settings.auto_save_retention_days)
        async with self.versions.session_factory() as db:
            deleted = await version_store.delete_auto_saves_older_than(db, cutoff)
            await db.commit()
        if deleted:
            logger.info("auto_save.swept", deleted_count=deleted, cutoff=cutoff.isoformat())
        return deleted

    async def drain(self) -> None:
        """Wait for background pruning (shutdown, tests)."""
        while self._prune_tasks:
            await asyncio.gather(*list(self._prune_tasks), return_exceptions=True)

    async def _prune(self, scope: VersionScope) -> int:
        cutoff = utcnow() - timedelta(days=self.settings.auto_save_retention_days)
        async with self.versions.scope_lock(scope):
            async with self.versions.session_factory() as db:
                async with db.begin():
                    by_count = await version_store.delete_auto_saves_beyond(
                        db, scope, self.settings.auto_save_keep_count
                    )
                    by_age = await version_store.delete_auto_saves_older_than(db, cutoff, scope=scope)
        deleted = by_count + by_age
        if deleted:
            await self.versions.invalidate_scope(scope)
            logger.info("auto_save.pruned", scope=scope.key, by_count=by_count, by_age=by_age)
        return deleted

    def _schedule_prune(self, scope: VersionScope) -> None:
        task = asyncio.create_task(self._prune_quietly(scope))
        self._prune_tasks.add(task)
        task.add_done_callback(self._prune_tasks.discard)

    async def _prune_quietly(self, scope: VersionScope) -> None:
        try:
            await self._prune(scope)
        except Exception as e:
            logger.warning("auto_save.prune_failed", scope=scope.key, error=str(e))
