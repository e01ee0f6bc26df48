"""Auto-save API: save (deduplicated by content hash), content hash, latest, status, cleanup."""
from uuid import UUID

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from version_engine.container import EngineServices
from version_engine.domain import Actor, ContentType, VersionScope
from version_engine.routers.deps import ActorDep, ServicesDep, TenantDep, to_response
from version_engine.schemas.version import VersionCreate

router = APIRouter(prefix="/api/content/{content_type}/{content_id}/autosave", tags=["autosave"])


@router.post("")
async def auto_save(
    content_type: ContentType,
    content_id: UUID,
    body: VersionCreate,
    tenant_id: UUID = TenantDep,
    actor: Actor = ActorDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    """200 with skipped=true when the content hash is unchanged, 201 when a version was stored."""
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    result = await services.auto_saves.auto_save(body, actor, scope)
    return to_response(result, success_status=200 if result.skipped else 201)


@router.get("/latest")
async def latest_auto_save(
    content_type: ContentType,
    content_id: UUID,
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    return to_response(await services.auto_saves.get_latest_auto_save(scope))


@router.post("/hash")
async def content_hash(
    content_type: ContentType,
    content_id: UUID,
    body: VersionCreate,
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    """Hash the engine would store for this content; pass it to /status."""
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    return to_response(await services.auto_saves.content_hash_for(body, scope))


@router.get("/status")
async def auto_save_status(
    content_type: ContentType,
    content_id: UUID,
    content_hash: str = Query(..., min_length=1),
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    return to_response(await services.auto_saves.auto_save_status(content_hash, scope))


@router.delete("/cleanup")
async def cleanup_auto_saves(
    content_type: ContentType,
    content_id: UUID,
    tenant_id: UUID = TenantDep,
    actor: Actor = ActorDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    return to_response(await services.auto_saves.prune_auto_saves(scope, actor))
