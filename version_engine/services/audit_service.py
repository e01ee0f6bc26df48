"""
Best-effort audit trail for version mutations.
Each entry is written in its own session after the primary commit, so a failing audit
write can never roll back a version operation. Errors are logged and swallowed.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from version_engine.domain import Actor, AuditAction
from version_engine.logging_config import current_correlation_id, get_logger
from version_engine.models import AuditLogEntry
from version_engine.schemas.audit import AuditEntryOut
from version_engine.services import version_store
from version_engine.services.classification import classify_content

logger = get_logger(__name__)


class AuditLogger:
    """Writes version_audit_log rows tagged with a data classification."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        action: AuditAction,
        tenant_id: UUID,
        actor: Actor,
        version_id: Optional[UUID] = None,
        details: Optional[Dict[str, Any]] = None,
        title: Optional[str] = None,
        body: Optional[str] = None,
        excerpt: Optional[str] = None,
    ) -> Optional[AuditLogEntry]:
        """Returns the stored entry, or None when the write failed."""
        classification = classify_content(title, body, excerpt)
        try:
            async with self._session_factory() as db:
                entry = await version_store.insert_audit_entry(
                    db,
                    action=action.value,
                    version_id=version_id,
                    actor_id=actor.actor_id,
                    tenant_id=tenant_id,
                    ip_address=actor.ip_address,
                    user_agent=actor.user_agent,
                    details=details or {},
                    data_classification=classification.value,
                    correlation_id=current_correlation_id(),
                )
                await db.commit()
            return entry
        except Exception as e:
            logger.warning(
                "audit.write_failed",
                action=action.value,
                version_id=str(version_id) if version_id else None,
                tenant_id=str(tenant_id),
                error=str(e),
            )
            return None

    async def list_entries(
        self,
        tenant_id: UUID,
        version_id: Optional[UUID] = None,
        limit: int = 50,
    ) -> List[AuditEntryOut]:
        """Newest first."""
        async with self._session_factory() as db:
            entries = await version_store.list_audit_entries(db, tenant_id, version_id=version_id, limit=limit)
            return [AuditEntryOut.model_validate(entry, from_attributes=True) for entry in entries]
