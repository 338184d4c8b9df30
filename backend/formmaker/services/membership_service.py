"""
Formmaker Backend — Membership Propagation Engine
==================================================

What:  Keeps permission visibility consistent between a team and everything
       the team owns when its membership changes.
Who:   TeamService (after it has checked the caller's rights).

Propagation:
    add_team_member(T, U)
        team_members      += (T, U)
        T.permissions[U]   = {view, edit}
        F.permissions[U]   = {view, edit, delete}   for every form F of T
        D.permissions[U]   = {view, edit, delete}   for every folder D of T

    remove_team_members(T, [U...])
        team_members      -= (T, U...)
        strip U... from the maps of T, every form of T and every folder of T

Atomicity:
    Each operation runs in a single atomic() block. If any write fails, every
    write of the operation is rolled back: membership and all maps stay
    exactly as they were. A member can never be left holding access to some
    team forms after being removed from the team.

Preconditions not checked here:
    - caller holds edit on the team
    - the team creator is not among the removed members
    - an added user is not already a member
"""

import logging
import uuid
from typing import List, Sequence, Tuple

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.database import atomic
from formmaker.models.folder import Folder
from formmaker.models.form import Form
from formmaker.models.team import team_members
from formmaker.permissions import (
    FULL_ACCESS,
    TEAM_RECORD_ACCESS,
    GrantOrigin,
    ResourceType,
)
from formmaker.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)


class MembershipService:

    def __init__(self, store: PermissionStore):
        self.store = store

    async def owned_resource_ids(
        self, db: AsyncSession, team_id: uuid.UUID
    ) -> Tuple[List[uuid.UUID], List[uuid.UUID]]:
        """(form ids, folder ids) owned by the team, trashed forms included."""
        forms = await db.execute(select(Form.id).where(Form.team_id == team_id))
        folders = await db.execute(select(Folder.id).where(Folder.team_id == team_id))
        return list(forms.scalars().all()), list(folders.scalars().all())

    async def member_ids(self, db: AsyncSession, team_id: uuid.UUID) -> List[uuid.UUID]:
        result = await db.execute(
            select(team_members.c.user_id).where(team_members.c.team_id == team_id)
        )
        return list(result.scalars().all())

    async def is_member(self, db: AsyncSession, team_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await db.execute(
            select(team_members.c.user_id).where(
                team_members.c.team_id == team_id,
                team_members.c.user_id == user_id,
            )
        )
        return result.first() is not None

    async def add_team_member(self, db: AsyncSession, team_id: uuid.UUID, member_id: uuid.UUID) -> None:
        async with atomic(db):
            await db.execute(insert(team_members).values(team_id=team_id, user_id=member_id))
            await self.store.set_entry(
                db, ResourceType.TEAM, [team_id], member_id, TEAM_RECORD_ACCESS, GrantOrigin.TEAM
            )
            form_ids, folder_ids = await self.owned_resource_ids(db, team_id)
            await self.store.set_entry(
                db, ResourceType.FORM, form_ids, member_id, FULL_ACCESS, GrantOrigin.TEAM
            )
            await self.store.set_entry(
                db, ResourceType.FOLDER, folder_ids, member_id, FULL_ACCESS, GrantOrigin.TEAM
            )
        logger.info(
            "Added user %s to team %s (%d forms, %d folders granted)",
            member_id, team_id, len(form_ids), len(folder_ids),
        )

    async def remove_team_members(
        self, db: AsyncSession, team_id: uuid.UUID, member_ids: Sequence[uuid.UUID]
    ) -> None:
        members = list(member_ids)
        if not members:
            return
        async with atomic(db):
            await db.execute(
                delete(team_members).where(
                    team_members.c.team_id == team_id,
                    team_members.c.user_id.in_(members),
                )
            )
            await self.store.revoke(db, ResourceType.TEAM, [team_id], members)
            form_ids, folder_ids = await self.owned_resource_ids(db, team_id)
            # Direct invitations on team forms are stripped as well; grant origin is not consulted.
            await self.store.revoke(db, ResourceType.FORM, form_ids, members)
            await self.store.revoke(db, ResourceType.FOLDER, folder_ids, members)
        logger.info(
            "Removed %d member(s) from team %s (%d forms, %d folders revoked)",
            len(members), team_id, len(form_ids), len(folder_ids),
        )
