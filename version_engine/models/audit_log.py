"""Audit log for version mutations (append-only)."""
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from version_engine.db import Base, JSONDocument, utcnow


class AuditLogEntry(Base):
    """
    One row per mutating operation: created, published, reverted, deleted, auto_saved; plus reviewer feedback.
    version_id has no foreign key so entries outlive deleted/pruned versions.
    """

    __tablename__ = "version_audit_log"
    __table_args__ = (Index("ix_version_audit_log_tenant_created", "tenant_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    version_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    data_classification: Mapped[str] = mapped_column(String(20), nullable=False, default="internal")
    correlation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
