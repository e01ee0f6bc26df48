"""Business logic services."""
from version_engine.services.auto_save_service import AutoSaveManager
from version_engine.services.version_manager import VersionManager

__all__ = [
    "AutoSaveManager",
    "VersionManager",
]
