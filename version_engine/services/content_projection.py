"""Copy-out of the published version into content_items (the live posts/pages table)."""
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from version_engine.logging_config import get_logger
from version_engine.models import ContentItem, ContentVersion

logger = get_logger(__name__)


class ContentProjection(ABC):
    @abstractmethod
    async def sync(self, db: AsyncSession, version: ContentVersion) -> None:
        """Runs inside the publish transaction; raising aborts the publish."""


class SqlContentProjection(ContentProjection):
    """Upsert the content_items row of the version's scope."""

    async def sync(self, db: AsyncSession, version: ContentVersion) -> None:
        r = await db.execute(
            select(ContentItem)
            .where(
                ContentItem.tenant_id == version.tenant_id,
                ContentItem.content_type == version.content_type,
                ContentItem.content_id == version.content_id,
            )
            .with_for_update()
        )
        item = r.scalar_one_or_none()
        if item is None:
            item = ContentItem(
                tenant_id=version.tenant_id,
                content_type=version.content_type,
                content_id=version.content_id,
                title=version.title,
            )
            db.add(item)
        item.title = version.title
        item.slug = version.slug
        item.body = version.body
        item.excerpt = version.excerpt
        item.structured_data = version.structured_data
        item.metadata_ = version.metadata_
        item.published_version_id = version.id
        item.published_version_number = version.version_number
        item.published_by = version.published_by
        item.published_at = version.published_at
        await db.flush()
        logger.info(
            "projection.synced",
            content_id=str(version.content_id),
            version_number=version.version_number,
        )
