"""
content_versions: append-only snapshots of a content item.
Only is_current_draft / is_current_published / version_type / published_* change after insert.
version_counters: last allocated version_number per scope.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from version_engine.db import Base, JSONDocument, utcnow


class ContentVersion(Base):
    """One immutable snapshot of a post/page."""

    __tablename__ = "content_versions"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "content_type", "content_id", "version_number",
            name="uq_content_versions_scope_number",
        ),
        # At most one current published / current draft per scope.
        Index(
            "uq_content_versions_current_published",
            "tenant_id", "content_type", "content_id",
            unique=True,
            postgresql_where=text("is_current_published"),
            sqlite_where=text("is_current_published = 1"),
        ),
        Index(
            "uq_content_versions_current_draft",
            "tenant_id", "content_type", "content_id",
            unique=True,
            postgresql_where=text("is_current_draft"),
            sqlite_where=text("is_current_draft = 1"),
        ),
        Index("ix_content_versions_scope_type_created", "tenant_id", "content_type", "content_id", "version_type", "created_at"),
        Index("ix_content_versions_created_by", "tenant_id", "created_by"),
        CheckConstraint("content_type IN ('post', 'page')", name="ck_content_versions_content_type"),
        CheckConstraint("version_type IN ('draft', 'published', 'auto_save')", name="ck_content_versions_version_type"),
        CheckConstraint(
            "NOT (version_type = 'auto_save' AND (is_current_draft OR is_current_published))",
            name="ck_content_versions_auto_save_not_current",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)  # post | page
    content_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    version_type: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    is_current_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_current_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    structured_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONDocument, nullable=True)

    change_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_fields: Mapped[List[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    published_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class VersionCounter(Base):
    """Monotonic version_number sequence per scope. Never decremented."""

    __tablename__ = "version_counters"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    content_type: Mapped[str] = mapped_column(String(20), primary_key=True)
    content_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
