"""Core value types shared by models, services and routers."""
import enum
from dataclasses import dataclass
from typing import Optional
from uuid import UUID


class ContentType(str, enum.Enum):
    POST = "post"
    PAGE = "page"


class VersionType(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    AUTO_SAVE = "auto_save"


class ChangeType(str, enum.Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class AuditAction(str, enum.Enum):
    CREATED = "created"
    PUBLISHED = "published"
    REVERTED = "reverted"
    DELETED = "deleted"
    AUTO_SAVED = "auto_saved"
    FEEDBACK = "feedback"


class DataClassification(str, enum.Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"
    SECRET = "secret"


@dataclass(frozen=True)
class VersionScope:
    """(tenant, content type, content id): the unit of numbering and current pointers."""

    tenant_id: UUID
    content_type: ContentType
    content_id: UUID

    @property
    def key(self) -> str:
        return f"{self.tenant_id}:{self.content_type.value}:{self.content_id}"


@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller identity plus optional request provenance."""

    actor_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
