"""Audit log schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel


class AuditEntryOut(BaseModel):
    """One audit log row."""

    id: UUID
    action: str
    version_id: Optional[UUID] = None
    actor_id: str
    tenant_id: UUID
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    data_classification: str
    correlation_id: Optional[str] = None
    created_at: Optional[datetime] = None


class AuditEntriesResponse(BaseModel):
    """Response for GET /api/audit/versions."""

    tenant_id: UUID
    entries: List[AuditEntryOut]
