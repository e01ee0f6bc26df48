"""Audit log API: version mutations of a tenant (created, published, reverted, deleted, auto_saved)."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from version_engine.container import EngineServices
from version_engine.routers.deps import ServicesDep, TenantDep
from version_engine.schemas.audit import AuditEntriesResponse

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("/versions", response_model=AuditEntriesResponse)
async def get_version_audit(
    version_id: Optional[UUID] = Query(None, description="Only entries of this version"),
    limit: int = Query(50, ge=1, le=200, description="Max rows"),
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> AuditEntriesResponse:
    """Newest first."""
    entries = await services.versions.audit.list_entries(tenant_id, version_id=version_id, limit=limit)
    return AuditEntriesResponse(tenant_id=tenant_id, entries=entries)
