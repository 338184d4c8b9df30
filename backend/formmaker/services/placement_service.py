"""
Formmaker Backend — Placement Service
=======================================

What:  Moves forms between locations and keeps permission maps in step:
       favourites, form ↔ folder, form → team, team → my forms.

Permission effects:
    toggle_favourite        none (view required)
    add_to_folder           none (edit on form and folder required)
    remove_from_folder      none (edit on form and folder required)
    move_to_team            map replaced by {member: view, edit, delete} for every
                            current member of the target team; folder cleared
    move_back_to_my_forms   every team member's entry stripped, mover re-granted
                            view, edit, delete; team and folder cleared

A folder only accepts forms from its own team (or personal forms, for a
personal folder), so a form's folder and team never disagree.
"""

import logging
import uuid

from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.database import atomic
from formmaker.exceptions import AccessDeniedError, ConflictError
from formmaker.models.folder import Folder
from formmaker.models.form import form_favourites
from formmaker.models.team import Team
from formmaker.permissions import FULL_ACCESS, Capability, GrantOrigin, ResourceType, uniform_map
from formmaker.schemas.form import FavouriteToggleResult, FormRead
from formmaker.services.base import database_errors, ensure_capability, ensure_creator, get_or_404
from formmaker.services.form_service import FORM_UPDATE, FormService, form_read
from formmaker.services.membership_service import MembershipService
from formmaker.services.outbox import Outbox, RealtimeEvent
from formmaker.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)


class PlacementService:

    def __init__(
        self,
        store: PermissionStore,
        forms: FormService,
        membership: MembershipService,
        outbox: Outbox,
    ):
        self.store = store
        self.forms = forms
        self.membership = membership
        self.outbox = outbox

    async def toggle_favourite(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID
    ) -> FavouriteToggleResult:
        with database_errors("update favourites", form_id=form_id):
            _, permissions = await self.forms.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.VIEW, "form", form_id)
            if await self.forms.is_favourite(db, form_id, actor_id):
                await db.execute(
                    delete(form_favourites).where(
                        form_favourites.c.form_id == form_id,
                        form_favourites.c.user_id == actor_id,
                    )
                )
                status = "removed"
            else:
                await db.execute(insert(form_favourites).values(form_id=form_id, user_id=actor_id))
                status = "added"
            logger.info("Form %s %s favourites of %s", form_id, status, actor_id)
            return FavouriteToggleResult(form_id=form_id, status=status)

    async def _folder_edit_pair(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, folder_id: uuid.UUID):
        form, form_permissions = await self.forms.load(db, form_id)
        folder = await get_or_404(db, Folder, folder_id, "folder")
        folder_permissions = await self.store.load(db, ResourceType.FOLDER, folder_id)
        ensure_capability(actor_id, form_permissions, Capability.EDIT, "form", form_id)
        ensure_capability(actor_id, folder_permissions, Capability.EDIT, "folder", folder_id)
        return form, form_permissions, folder

    async def add_to_folder(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, folder_id: uuid.UUID
    ) -> FormRead:
        with database_errors("add form to folder", form_id=form_id, folder_id=folder_id):
            form, permissions, folder = await self._folder_edit_pair(db, actor_id, form_id, folder_id)
            if folder.team_id != form.team_id:
                raise ConflictError(
                    message="A form can only be filed in a folder of its own team",
                    context={
                        "form_team_id": str(form.team_id),
                        "folder_team_id": str(folder.team_id),
                    },
                )
            form.folder_id = folder_id
            await db.flush()
            self.outbox.stage(db, RealtimeEvent(str(form_id), FORM_UPDATE, {"folder_id": str(folder_id)}))
            logger.info("Form %s filed in folder %s by %s", form_id, folder_id, actor_id)
            return form_read(form, permissions, await self.forms.is_favourite(db, form_id, actor_id))

    async def remove_from_folder(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, folder_id: uuid.UUID
    ) -> FormRead:
        with database_errors("remove form from folder", form_id=form_id, folder_id=folder_id):
            form, permissions, _ = await self._folder_edit_pair(db, actor_id, form_id, folder_id)
            if form.folder_id != folder_id:
                raise ConflictError(
                    message="The form is not in this folder",
                    context={"form_id": str(form_id), "folder_id": str(folder_id)},
                )
            form.folder_id = None
            await db.flush()
            self.outbox.stage(db, RealtimeEvent(str(form_id), FORM_UPDATE, {"folder_id": None}))
            logger.info("Form %s taken out of folder %s by %s", form_id, folder_id, actor_id)
            return form_read(form, permissions, await self.forms.is_favourite(db, form_id, actor_id))

    async def move_to_team(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, team_id: uuid.UUID
    ) -> FormRead:
        """
        Hands the form over to a team. Earlier individual grants are discarded:
        afterwards exactly the current team members hold the form.
        """
        with database_errors("move form to team", form_id=form_id, team_id=team_id):
            form, permissions = await self.forms.load(db, form_id)
            await get_or_404(db, Team, team_id, "team")
            ensure_capability(actor_id, permissions, Capability.EDIT, "form", form_id)
            if not await self.membership.is_member(db, team_id, actor_id):
                raise AccessDeniedError(
                    message="You can only move forms into teams you belong to",
                    required="team member",
                    context={"team_id": str(team_id)},
                )
            member_ids = await self.membership.member_ids(db, team_id)
            new_permissions = uniform_map(member_ids, FULL_ACCESS)
            async with atomic(db):
                form.team_id = team_id
                form.folder_id = None
                await self.store.replace(db, ResourceType.FORM, form_id, new_permissions, GrantOrigin.TEAM)
            self.outbox.stage(db, RealtimeEvent(str(form_id), FORM_UPDATE, {"team_id": str(team_id)}))
            logger.info(
                "Form %s moved to team %s by %s (%d member(s) granted)",
                form_id, team_id, actor_id, len(member_ids),
            )
            return form_read(form, new_permissions, await self.forms.is_favourite(db, form_id, actor_id))

    async def move_back_to_my_forms(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID
    ) -> FormRead:
        """Only the form's creator may take it out of its team."""
        with database_errors("move form back to my forms", form_id=form_id):
            form, _ = await self.forms.load(db, form_id)
            ensure_creator(actor_id, form.creator_id, "form", form_id)
            if form.team_id is None:
                raise ConflictError(
                    message="The form is not in a team",
                    context={"form_id": str(form_id)},
                )
            team_id = form.team_id
            member_ids = await self.membership.member_ids(db, team_id)
            async with atomic(db):
                await self.store.revoke(db, ResourceType.FORM, [form_id], member_ids)
                await self.store.set_entry(
                    db, ResourceType.FORM, [form_id], actor_id, FULL_ACCESS, GrantOrigin.OWNER
                )
                form.team_id = None
                form.folder_id = None
            permissions = await self.store.load(db, ResourceType.FORM, form_id)
            self.outbox.stage(db, RealtimeEvent(str(form_id), FORM_UPDATE, {"team_id": None}))
            logger.info("Form %s moved out of team %s by %s", form_id, team_id, actor_id)
            return form_read(form, permissions, await self.forms.is_favourite(db, form_id, actor_id))
