"""
Formmaker Backend — Folder Service
====================================

What:  Personal and team folders: create, list, read, rename, delete.

Creation grants:
    personal folder   creator                          → view, edit, delete
    team folder       every member at creation time    → view, edit, delete
                      (a snapshot; later membership changes reach the folder
                      through the membership propagation engine)

Delete Cascade (one transaction):
    responses of forms in the folder → those forms → the folder
"""

import logging
import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.database import atomic
from formmaker.models.folder import Folder
from formmaker.models.form import Form
from formmaker.models.team import Team
from formmaker.models.user import User
from formmaker.permissions import (
    FULL_ACCESS,
    Capability,
    GrantOrigin,
    PermissionMap,
    ResourceType,
    serialize,
    uniform_map,
)
from formmaker.schemas.folder import FolderCreate, FolderDetail, FolderRead, FolderUpdate
from formmaker.schemas.form import FormSummary
from formmaker.services.base import database_errors, ensure_capability, get_or_404
from formmaker.services.cascade import purge_forms
from formmaker.services.membership_service import MembershipService
from formmaker.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)


def folder_read(folder: Folder, permissions: PermissionMap) -> FolderRead:
    return FolderRead(
        id=folder.id,
        name=folder.name,
        color=folder.color,
        creator_id=folder.creator_id,
        team_id=folder.team_id,
        created_at=folder.created_at,
        updated_at=folder.updated_at,
        permissions=serialize(permissions),
    )


class FolderService:

    def __init__(self, store: PermissionStore, membership: MembershipService):
        self.store = store
        self.membership = membership

    async def _load(self, db: AsyncSession, folder_id: uuid.UUID):
        folder = await get_or_404(db, Folder, folder_id, "folder")
        permissions = await self.store.load(db, ResourceType.FOLDER, folder_id)
        return folder, permissions

    async def create_personal_folder(
        self, db: AsyncSession, actor_id: uuid.UUID, data: FolderCreate
    ) -> FolderRead:
        with database_errors("create folder"):
            await get_or_404(db, User, actor_id, "user")
            permissions = {actor_id: FULL_ACCESS}
            async with atomic(db):
                folder = Folder(name=data.name, color=data.color, creator_id=actor_id)
                db.add(folder)
                await db.flush()
                await self.store.replace(db, ResourceType.FOLDER, folder.id, permissions, GrantOrigin.OWNER)
            logger.info("Folder %s created by %s", folder.id, actor_id)
            return folder_read(folder, permissions)

    async def create_team_folder(
        self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID, data: FolderCreate
    ) -> FolderRead:
        with database_errors("create team folder", team_id=team_id):
            await get_or_404(db, Team, team_id, "team")
            team_permissions = await self.store.load(db, ResourceType.TEAM, team_id)
            ensure_capability(actor_id, team_permissions, Capability.EDIT, "team", team_id)
            member_ids = await self.membership.member_ids(db, team_id)
            permissions = uniform_map(member_ids, FULL_ACCESS)
            async with atomic(db):
                folder = Folder(name=data.name, color=data.color, creator_id=actor_id, team_id=team_id)
                db.add(folder)
                await db.flush()
                await self.store.replace(db, ResourceType.FOLDER, folder.id, permissions, GrantOrigin.TEAM)
            logger.info(
                "Folder %s created in team %s by %s (%d member(s) granted)",
                folder.id, team_id, actor_id, len(member_ids),
            )
            return folder_read(folder, permissions)

    async def list_my_folders(self, db: AsyncSession, actor_id: uuid.UUID) -> List[FolderRead]:
        with database_errors("list folders", user_id=actor_id):
            result = await db.execute(
                select(Folder)
                .where(Folder.creator_id == actor_id, Folder.team_id.is_(None))
                .order_by(Folder.created_at.desc())
            )
            folders = list(result.scalars().all())
            maps = await self.store.load_many(db, ResourceType.FOLDER, [f.id for f in folders])
            return [folder_read(folder, maps.get(folder.id, {})) for folder in folders]

    async def list_team_folders(
        self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID
    ) -> List[FolderRead]:
        with database_errors("list team folders", team_id=team_id):
            await get_or_404(db, Team, team_id, "team")
            team_permissions = await self.store.load(db, ResourceType.TEAM, team_id)
            ensure_capability(actor_id, team_permissions, Capability.VIEW, "team", team_id)
            result = await db.execute(
                select(Folder).where(Folder.team_id == team_id).order_by(Folder.created_at.desc())
            )
            folders = list(result.scalars().all())
            maps = await self.store.load_many(db, ResourceType.FOLDER, [f.id for f in folders])
            return [folder_read(folder, maps.get(folder.id, {})) for folder in folders]

    async def get_folder(self, db: AsyncSession, actor_id: uuid.UUID, folder_id: uuid.UUID) -> FolderDetail:
        with database_errors("retrieve folder", folder_id=folder_id):
            folder, permissions = await self._load(db, folder_id)
            ensure_capability(actor_id, permissions, Capability.VIEW, "folder", folder_id)
            result = await db.execute(
                select(Form)
                .where(Form.folder_id == folder_id, Form.deleted_at.is_(None))
                .order_by(Form.created_at.desc())
            )
            forms = [FormSummary.model_validate(form) for form in result.scalars().all()]
            return FolderDetail(**folder_read(folder, permissions).model_dump(), forms=forms)

    async def update_folder(
        self, db: AsyncSession, actor_id: uuid.UUID, folder_id: uuid.UUID, data: FolderUpdate
    ) -> FolderRead:
        with database_errors("update folder", folder_id=folder_id):
            folder, permissions = await self._load(db, folder_id)
            ensure_capability(actor_id, permissions, Capability.EDIT, "folder", folder_id)
            for key, value in data.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(folder, key, value)
            await db.flush()
            logger.info("Folder %s updated by %s", folder_id, actor_id)
            return folder_read(folder, permissions)

    async def delete_folder(self, db: AsyncSession, actor_id: uuid.UUID, folder_id: uuid.UUID) -> int:
        """Deletes the folder with every form inside it. Returns how many forms went with it."""
        with database_errors("delete folder", folder_id=folder_id):
            folder, permissions = await self._load(db, folder_id)
            ensure_capability(actor_id, permissions, Capability.DELETE, "folder", folder_id)
            result = await db.execute(select(Form.id).where(Form.folder_id == folder_id))
            form_ids = list(result.scalars().all())
            async with atomic(db):
                await purge_forms(db, self.store, form_ids)
                await self.store.purge(db, ResourceType.FOLDER, [folder_id])
                await db.delete(folder)
            logger.info("Folder %s deleted by %s with %d form(s)", folder_id, actor_id, len(form_ids))
            return len(form_ids)
