"""initial: tenants, content versions, counters, audit log, live content projection

Revision ID: 001
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "tenant_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("role", sa.String(32), server_default="editor", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "actor_id", name="uq_tenant_members_tenant_actor"),
    )
    op.create_table(
        "content_versions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content_type", sa.String(20), nullable=False),
        sa.Column("content_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("version_type", sa.String(20), server_default="draft", nullable=False),
        sa.Column("is_current_draft", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("is_current_published", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("structured_data", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("change_summary", sa.Text(), nullable=True),
        sa.Column("changed_fields", postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("published_by", sa.String(255), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "content_type", "content_id", "version_number",
            name="uq_content_versions_scope_number",
        ),
        sa.CheckConstraint("content_type IN ('post', 'page')", name="ck_content_versions_content_type"),
        sa.CheckConstraint(
            "version_type IN ('draft', 'published', 'auto_save')",
            name="ck_content_versions_version_type",
        ),
        sa.CheckConstraint(
            "NOT (version_type = 'auto_save' AND (is_current_draft OR is_current_published))",
            name="ck_content_versions_auto_save_not_current",
        ),
    )
    # At most one current published / current draft per scope
    op.create_index(
        "uq_content_versions_current_published",
        "content_versions",
        ["tenant_id", "content_type", "content_id"],
        unique=True,
        postgresql_where=sa.text("is_current_published"),
    )
    op.create_index(
        "uq_content_versions_current_draft",
        "content_versions",
        ["tenant_id", "content_type", "content_id"],
        unique=True,
        postgresql_where=sa.text("is_current_draft"),
    )
    op.create_index(
        "ix_content_versions_scope_type_created",
        "content_versions",
        ["tenant_id", "content_type", "content_id", "version_type", "created_at"],
    )
    op.create_index("ix_content_versions_created_by", "content_versions", ["tenant_id", "created_by"])

    op.create_table(
        "version_counters",
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content_type", sa.String(20), nullable=False),
        sa.Column("content_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("last_number", sa.Integer(), server_default="0", nullable=False),
        sa.PrimaryKeyConstraint("tenant_id", "content_type", "content_id"),
    )
    op.create_table(
        "version_audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("version_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("data_classification", sa.String(20), server_default="internal", nullable=False),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_version_audit_log_version_id", "version_audit_log", ["version_id"])
    op.create_index("ix_version_audit_log_tenant_created", "version_audit_log", ["tenant_id", "created_at"])

    op.create_table(
        "content_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content_type", sa.String(20), nullable=False),
        sa.Column("content_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("structured_data", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("published_version_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("published_version_number", sa.Integer(), nullable=True),
        sa.Column("published_by", sa.String(255), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "content_type", "content_id", name="uq_content_items_scope"),
    )


def downgrade() -> None:
    op.drop_table("content_items")
    op.drop_index("ix_version_audit_log_tenant_created", table_name="version_audit_log")
    op.drop_index("ix_version_audit_log_version_id", table_name="version_audit_log")
    op.drop_table("version_audit_log")
    op.drop_table("version_counters")
    op.drop_index("ix_content_versions_created_by", table_name="content_versions")
    op.drop_index("ix_content_versions_scope_type_created", table_name="content_versions")
    op.drop_index("uq_content_versions_current_draft", table_name="content_versions")
    op.drop_index("uq_content_versions_current_published", table_name="content_versions")
    op.drop_table("content_versions")
    op.drop_table("tenant_members")
    op.drop_table("tenants")
