"""Tenant access checks consulted before every mutating operation."""
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, Set, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from version_engine.models import TenantMember


class TenantAccessChecker(ABC):
    @abstractmethod
    async def has_access(self, tenant_id: UUID, actor_id: str) -> bool:
        ...


class DbTenantAccessChecker(TenantAccessChecker):
    """Actor may write in a tenant when a tenant_members row exists."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def has_access(self, tenant_id: UUID, actor_id: str) -> bool:
        async with self._session_factory() as db:
            r = await db.execute(
                select(TenantMember.id).where(
                    TenantMember.tenant_id == tenant_id,
                    TenantMember.actor_id == actor_id,
                )
            )
            return r.first() is not None


class StaticTenantAccessChecker(TenantAccessChecker):
    """In-memory allow list (tests, embedding without a members table)."""

    def __init__(self, grants: Iterable[Tuple[UUID, str]] = ()) -> None:
        self._grants: Dict[UUID, Set[str]] = defaultdict(set)
        for tenant_id, actor_id in grants:
            self.grant(tenant_id, actor_id)

    def grant(self, tenant_id: UUID, actor_id: str) -> None:
        self._grants[tenant_id].add(actor_id)

    def revoke(self, tenant_id: UUID, actor_id: str) -> None:
        self._grants[tenant_id].discard(actor_id)

    async def has_access(self, tenant_id: UUID, actor_id: str) -> bool:
        return actor_id in self._grants.get(tenant_id, set())
