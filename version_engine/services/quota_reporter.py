"""Version-count growth reported to the quota subsystem. The engine only enforces its own ceiling."""
from abc import ABC, abstractmethod

from version_engine.domain import VersionScope
from version_engine.logging_config import get_logger

logger = get_logger(__name__)


class QuotaReporter(ABC):
    @abstractmethod
    async def report(self, scope: VersionScope, version_count: int) -> None:
        ...


class LoggingQuotaReporter(QuotaReporter):
    async def report(self, scope: VersionScope, version_count: int) -> None:
        logger.info(
            "quota.version_count",
            tenant_id=str(scope.tenant_id),
            content_type=scope.content_type.value,
            content_id=str(scope.content_id),
            version_count=version_count,
        )
