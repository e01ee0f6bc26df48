"""SQLAlchemy models for the content version engine."""
from version_engine.models.tenant import Tenant, TenantMember
from version_engine.models.content_version import ContentVersion, VersionCounter
from version_engine.models.audit_log import AuditLogEntry
from version_engine.models.content_item import ContentItem

__all__ = [
    "Tenant",
    "TenantMember",
    "ContentVersion",
    "VersionCounter",
    "AuditLogEntry",
    "ContentItem",
]
