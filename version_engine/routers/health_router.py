# Health: /health (liveness), /api/readyz (readiness: DB + Redis if configured).
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from version_engine.container import EngineServices
from version_engine.logging_config import get_logger
from version_engine.routers.deps import ServicesDep

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health")
def health() -> dict[str, str]:
    """Liveness for load balancer / Docker. Always 200."""
    return {"status": "ok"}


@router.get("/api/readyz")
async def readyz(services: EngineServices = ServicesDep):
    """Readiness: 200 when the store (and Redis, if set) answer, 503 otherwise."""
    try:
        async with services.session_factory() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("readyz.db_fail", error=str(e))
        return JSONResponse(status_code=503, content={"status": "unhealthy", "db": "fail"})

    settings = services.settings
    if settings.redis_url:
        try:
            from redis.asyncio import Redis
            client = Redis.from_url(settings.redis_url, decode_responses=True)
            await client.ping()
            await client.aclose()
        except Exception as e:
            logger.warning("readyz.redis_fail", error=str(e))
            return JSONResponse(status_code=503, content={"status": "unhealthy", "redis": "fail"})

    return {"status": "ok", "db": "ok", "redis": "ok" if settings.redis_url else "disabled"}
