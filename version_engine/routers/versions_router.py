"""Version API: create, history, pointers, publish, revert, delete, compare and export, metrics, feedback."""
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, Response

from version_engine.container import EngineServices
from version_engine.domain import Actor, ContentType, VersionScope, VersionType
from version_engine.routers.deps import ActorDep, ServicesDep, TenantDep, to_response
from version_engine.schemas.version import DiffGranularity, HistoryOptions, VersionCreate, VersionFeedback

router = APIRouter(prefix="/api", tags=["versions"])


@router.post("/content/{content_type}/{content_id}/versions")
async def create_version(
    content_type: ContentType,
    content_id: UUID,
    body: VersionCreate,
    tenant_id: UUID = TenantDep,
    actor: Actor = ActorDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    """Create a draft version. is_current_draft=true moves the current-draft pointer to it."""
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    result = await services.versions.create_version(body, actor, scope)
    return to_response(result, success_status=201)


@router.get("/content/{content_type}/{content_id}/versions")
async def list_versions(
    content_type: ContentType,
    content_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    include_auto_saves: bool = Query(True),
    published_only: bool = Query(False),
    version_type: Optional[VersionType] = Query(None),
    order_by: Literal["version_number", "created_at"] = Query("version_number"),
    order_direction: Literal["asc", "desc"] = Query("desc"),
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    options = HistoryOptions(
        limit=limit,
        offset=offset,
        include_auto_saves=include_auto_saves,
        published_only=published_only,
        version_type=version_type,
        order_by=order_by,
        order_direction=order_direction,
    )
    return to_response(await services.versions.get_version_history(scope, options))


@router.get("/content/{content_type}/{content_id}/versions/draft")
async def get_latest_draft(
    content_type: ContentType,
    content_id: UUID,
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    """data is null when the item has no current draft."""
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    return to_response(await services.versions.get_latest_draft(scope))


@router.get("/content/{content_type}/{content_id}/versions/published")
async def get_published_version(
    content_type: ContentType,
    content_id: UUID,
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    scope = VersionScope(tenant_id=tenant_id, content_type=content_type, content_id=content_id)
    return to_response(await services.versions.get_published_version(scope))


@router.get("/versions/compare")
async def compare_versions(
    a: UUID = Query(..., description="First version id"),
    b: UUID = Query(..., description="Second version id"),
    granularity: DiffGranularity = Query("line", description="Body diff granularity"),
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    return to_response(
        await services.versions.compare_versions(a, b, tenant_id=tenant_id, granularity=granularity)
    )


@router.get("/versions/compare/export")
async def export_comparison(
    a: UUID = Query(..., description="First version id"),
    b: UUID = Query(..., description="Second version id"),
    format: Literal["json", "html"] = Query("json"),
    granularity: DiffGranularity = Query("line"),
    include_statistics: bool = Query(True),
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> Response:
    """Comparison as a downloadable JSON or HTML document."""
    result = await services.versions.export_comparison(
        a,
        b,
        fmt=format,
        tenant_id=tenant_id,
        granularity=granularity,
        include_statistics=include_statistics,
    )
    if not result.success:
        return to_response(result)
    media_type = "text/html" if format == "html" else "application/json"
    return Response(content=result.data, media_type=media_type)


@router.get("/versions/metrics")
async def version_metrics(
    content_type: Optional[ContentType] = Query(None),
    content_id: Optional[UUID] = Query(None),
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    return to_response(await services.versions.get_version_metrics(tenant_id, content_type, content_id))


@router.get("/versions/by-actor/{actor_id}")
async def versions_by_actor(
    actor_id: str,
    limit: int = Query(50, ge=1, le=200),
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    return to_response(await services.versions.get_versions_by_actor(tenant_id, actor_id, limit=limit))


@router.get("/versions/{version_id}")
async def get_version(
    version_id: UUID,
    tenant_id: UUID = TenantDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    return to_response(await services.versions.get_version(version_id, tenant_id=tenant_id))


@router.post("/versions/{version_id}/publish")
async def publish_version(
    version_id: UUID,
    actor: Actor = ActorDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    return to_response(await services.versions.publish_version(version_id, actor))


@router.post("/versions/{version_id}/revert")
async def revert_to_version(
    version_id: UUID,
    actor: Actor = ActorDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    """Creates and publishes a copy of the version."""
    return to_response(await services.versions.revert_to_version(version_id, actor), success_status=201)


@router.delete("/versions/{version_id}")
async def delete_version(
    version_id: UUID,
    actor: Actor = ActorDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    return to_response(await services.versions.delete_version(version_id, actor))


@router.post("/versions/{version_id}/feedback")
async def record_feedback(
    version_id: UUID,
    body: VersionFeedback,
    actor: Actor = ActorDep,
    services: EngineServices = ServicesDep,
) -> JSONResponse:
    return to_response(await services.versions.record_feedback(version_id, body, actor), success_status=201)
