"""
Formmaker Backend — Permission Store
======================================

What:  Reads and writes permission maps in the `permission_grants` table.
Who:   Every resource service and the membership propagation engine.
How:   A permission map is assembled from grant rows on read and exploded
       back into rows on write. Setting a user's entry always replaces the
       previous entry for that user on that resource.

Grant rows are only ever handled as plain rows (column selects, bulk
INSERT/DELETE), never as ORM instances, so no stale grant object can linger
in a session's identity map between a revoke and a re-grant.

None of these methods check permissions or commit; callers do both.
"""

import uuid
from collections import defaultdict
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.models.permission import PermissionGrant
from formmaker.permissions import Capability, GrantOrigin, PermissionMap, ResourceType


def _rows(
    resource_type: ResourceType,
    resource_id: uuid.UUID,
    user_id: uuid.UUID,
    capabilities: Iterable[Capability],
    origin: GrantOrigin,
) -> List[Dict[str, Any]]:
    return [
        {
            "resource_type": resource_type.value,
            "resource_id": resource_id,
            "user_id": user_id,
            "capability": capability.value,
            "origin": origin.value,
        }
        for capability in capabilities
    ]


class PermissionStore:

    async def load(
        self,
        db: AsyncSession,
        resource_type: ResourceType,
        resource_id: uuid.UUID,
    ) -> PermissionMap:
        maps = await self.load_many(db, resource_type, [resource_id])
        return maps.get(resource_id, {})

    async def load_many(
        self,
        db: AsyncSession,
        resource_type: ResourceType,
        resource_ids: Sequence[uuid.UUID],
    ) -> Dict[uuid.UUID, PermissionMap]:
        """Maps for several resources in one query; resources without grants are omitted."""
        if not resource_ids:
            return {}
        result = await db.execute(
            select(
                PermissionGrant.resource_id,
                PermissionGrant.user_id,
                PermissionGrant.capability,
            ).where(
                PermissionGrant.resource_type == resource_type.value,
                PermissionGrant.resource_id.in_(list(resource_ids)),
            )
        )
        collected: Dict[uuid.UUID, Dict[uuid.UUID, Set[Capability]]] = defaultdict(
            lambda: defaultdict(set)
        )
        for resource_id, user_id, capability in result.all():
            collected[resource_id][user_id].add(Capability(capability))
        return {
            resource_id: {user_id: frozenset(caps) for user_id, caps in entries.items()}
            for resource_id, entries in collected.items()
        }

    async def set_entry(
        self,
        db: AsyncSession,
        resource_type: ResourceType,
        resource_ids: Iterable[uuid.UUID],
        user_id: uuid.UUID,
        capabilities: FrozenSet[Capability],
        origin: GrantOrigin,
    ) -> None:
        """permissions[user_id] = capabilities on every listed resource."""
        ids = list(resource_ids)
        if not ids:
            return
        await self.revoke(db, resource_type, ids, [user_id])
        rows: List[Dict[str, Any]] = []
        for resource_id in ids:
            rows.extend(_rows(resource_type, resource_id, user_id, capabilities, origin))
        await self._insert(db, rows)

    async def replace(
        self,
        db: AsyncSession,
        resource_type: ResourceType,
        resource_id: uuid.UUID,
        permissions: Mapping[uuid.UUID, FrozenSet[Capability]],
        origin: GrantOrigin,
    ) -> None:
        """Discards the resource's whole map and writes `permissions` in its place."""
        await self.purge(db, resource_type, [resource_id])
        rows: List[Dict[str, Any]] = []
        for user_id, capabilities in permissions.items():
            rows.extend(_rows(resource_type, resource_id, user_id, capabilities, origin))
        await self._insert(db, rows)

    async def revoke(
        self,
        db: AsyncSession,
        resource_type: ResourceType,
        resource_ids: Iterable[uuid.UUID],
        user_ids: Iterable[uuid.UUID],
    ) -> None:
        """Removes the users' entries, whatever their origin, from every listed resource."""
        ids = list(resource_ids)
        users = list(user_ids)
        if not ids or not users:
            return
        await db.execute(
            delete(PermissionGrant)
            .where(
                PermissionGrant.resource_type == resource_type.value,
                PermissionGrant.resource_id.in_(ids),
                PermissionGrant.user_id.in_(users),
            )
            .execution_options(synchronize_session=False)
        )

    async def purge(
        self,
        db: AsyncSession,
        resource_type: ResourceType,
        resource_ids: Iterable[uuid.UUID],
    ) -> None:
        """Drops every grant on the listed resources (used when they are deleted)."""
        ids = list(resource_ids)
        if not ids:
            return
        await db.execute(
            delete(PermissionGrant)
            .where(
                PermissionGrant.resource_type == resource_type.value,
                PermissionGrant.resource_id.in_(ids),
            )
            .execution_options(synchronize_session=False)
        )

    async def resources_of(
        self,
        db: AsyncSession,
        resource_type: ResourceType,
        user_id: uuid.UUID,
        capability: Capability,
    ) -> List[uuid.UUID]:
        """Ids of every resource of the given type on which the user holds `capability`."""
        result = await db.execute(
            select(PermissionGrant.resource_id).where(
                PermissionGrant.resource_type == resource_type.value,
                PermissionGrant.user_id == user_id,
                PermissionGrant.capability == capability.value,
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def _insert(db: AsyncSession, rows: List[Dict[str, Any]]) -> None:
        if rows:
            await db.execute(insert(PermissionGrant), rows)
