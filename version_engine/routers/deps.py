"""Request-scoped dependencies: engine services, tenant and actor headers."""
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, Request
from fastapi.responses import JSONResponse

from version_engine.container import EngineServices
from version_engine.domain import Actor
from version_engine.errors import ErrorCode
from version_engine.schemas.common import ServiceResult

ERROR_STATUS = {
    ErrorCode.ACCESS_DENIED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_FAILED: 422,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.LIMIT_EXCEEDED: 409,
    ErrorCode.CONFLICT_RETRYABLE: 409,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


def get_services(request: Request) -> EngineServices:
    return request.app.state.services


def get_tenant_id(x_tenant_id: UUID = Header(..., alias="X-Tenant-ID")) -> UUID:
    return x_tenant_id


def get_actor(
    request: Request,
    x_actor_id: str = Header(..., alias="X-Actor-ID"),
    user_agent: Optional[str] = Header(None, alias="User-Agent"),
) -> Actor:
    """Identity is authenticated upstream; the engine only scopes by tenant."""
    ip_address = request.client.host if request.client else None
    return Actor(actor_id=x_actor_id, ip_address=ip_address, user_agent=user_agent)


def to_response(result: ServiceResult, success_status: int = 200) -> JSONResponse:
    """ServiceResult body; HTTP status from error_code."""
    status = success_status if result.success else ERROR_STATUS.get(result.error_code, 500)
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))


ServicesDep = Depends(get_services)
TenantDep = Depends(get_tenant_id)
ActorDep = Depends(get_actor)
