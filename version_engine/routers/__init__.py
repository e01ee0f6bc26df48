"""API routers."""
from version_engine.routers.audit_router import router as audit_router
from version_engine.routers.autosave_router import router as autosave_router
from version_engine.routers.health_router import router as health_router
from version_engine.routers.versions_router import router as versions_router

__all__ = [
    "audit_router",
    "autosave_router",
    "health_router",
    "versions_router",
]
