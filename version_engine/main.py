"""FastAPI application entrypoint."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from version_engine import __version__
from version_engine.container import EngineServices, build_services
from version_engine.logging_config import configure_logging, get_logger
from version_engine.middleware.correlation_id import CorrelationIdMiddleware
from version_engine.routers import (
    audit_router,
    autosave_router,
    health_router,
    versions_router,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown: logging, engine services, maintenance worker."""
    configure_logging()
    if getattr(app.state, "services", None) is None:
        from version_engine.db import async_session_factory
        app.state.services = build_services(async_session_factory)
    services: EngineServices = app.state.services
    if services.settings.maintenance_enabled:
        services.maintenance.start()
    logger.info("app_started", version=__version__)
    yield
    await services.shutdown()
    logger.info("app_shutdown")


def create_app(services: Optional[EngineServices] = None) -> FastAPI:
    """services=None builds them from settings on startup."""
    app = FastAPI(
        title="Content Version Engine",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(health_router)
    app.include_router(versions_router)
    app.include_router(autosave_router)
    app.include_router(audit_router)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root endpoint: app name and version."""
        return {"name": "content_version_engine", "version": __version__}

    return app


app = create_app()
