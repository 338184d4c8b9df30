"""
Formmaker Backend — Form Service
==================================

What:  Everything about a single form except its placement: creation in each
       of the four locations, reading, editing, listing, the trash (soft
       delete, restore, hard delete), individual members and availability
       settings.
Who:   Called by the /api/forms router.

Who may do what:
    read a form, list its members       view
    edit content, invite/remove members edit
    trash, restore, delete for good     delete
    availability settings               creator only

Creation grants:
    personal form / form in my folder   creator                → view, edit, delete
    team form / form in team folder     every current member   → view, edit, delete

Listing:
    Default listing shows forms the user fully owns (holds delete) in the
    requested scope: a team when team_id is given, personal forms otherwise,
    optionally narrowed to one folder, to the trash, or to favourites.
    The shared listing (is_shared) shows live forms the user can view but
    does not own, regardless of scope.
"""

import logging
import math
import uuid
from typing import List, Optional, Sequence

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.config import settings
from formmaker.database import atomic
from formmaker.exceptions import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from formmaker.models.base import utcnow
from formmaker.models.folder import Folder
from formmaker.models.form import Form, form_favourites
from formmaker.models.permission import PermissionGrant
from formmaker.models.team import Team
from formmaker.models.user import User
from formmaker.permissions import (
    FULL_ACCESS,
    INVITED_MEMBER_ACCESS,
    Capability,
    GrantOrigin,
    PermissionMap,
    ResourceType,
    serialize,
    uniform_map,
)
from formmaker.schemas.form import (
    DisabledDateUpdate,
    FormCreate,
    FormListItem,
    FormListResponse,
    FormRead,
    FormUpdate,
    dump_elements,
)
from formmaker.schemas.team import InvitationRead
from formmaker.schemas.user import UserRead
from formmaker.services.base import database_errors, ensure_capability, ensure_creator, get_or_404
from formmaker.services.cascade import purge_forms
from formmaker.services.mail_service import form_invitation_email
from formmaker.services.membership_service import MembershipService
from formmaker.services.outbox import Outbox, RealtimeEvent
from formmaker.services.permission_store import PermissionStore
from formmaker.services.user_service import UserService

logger = logging.getLogger(__name__)

FORM_UPDATE = "formUpdate"

SORT_FIELDS = {
    "created_at": Form.created_at,
    "updated_at": Form.updated_at,
    "title": Form.title,
}
SORT_DIRECTIONS = {"asc": asc, "desc": desc}


def form_read(form: Form, permissions: PermissionMap, is_favourite: bool = False) -> FormRead:
    return FormRead(
        id=form.id,
        title=form.title,
        logo_url=form.logo_url,
        creator_id=form.creator_id,
        folder_id=form.folder_id,
        team_id=form.team_id,
        deleted_at=form.deleted_at,
        disabled=form.disabled,
        total_submissions=form.total_submissions,
        created_at=form.created_at,
        updated_at=form.updated_at,
        settings=form.settings or {},
        elements=form.elements or [],
        disabled_on_specific_date=form.disabled_on_specific_date,
        disabled_date=form.disabled_date,
        disabled_notification=form.disabled_notification,
        permissions=serialize(permissions),
        is_favourite=is_favourite,
    )


class FormService:

    def __init__(
        self,
        store: PermissionStore,
        membership: MembershipService,
        users: UserService,
        outbox: Outbox,
    ):
        self.store = store
        self.membership = membership
        self.users = users
        self.outbox = outbox

    async def load(self, db: AsyncSession, form_id: uuid.UUID):
        """The form row and its permission map; NotFoundError if the form is gone."""
        form = await get_or_404(db, Form, form_id, "form")
        permissions = await self.store.load(db, ResourceType.FORM, form_id)
        return form, permissions

    async def is_favourite(self, db: AsyncSession, form_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await db.execute(
            select(form_favourites.c.form_id).where(
                form_favourites.c.form_id == form_id,
                form_favourites.c.user_id == user_id,
            )
        )
        return result.first() is not None

    # ── Creation ──────────────────────────────────────────────────────────

    async def create_form(
        self,
        db: AsyncSession,
        actor_id: uuid.UUID,
        data: FormCreate,
        team_id: Optional[uuid.UUID] = None,
        folder_id: Optional[uuid.UUID] = None,
    ) -> FormRead:
        """
        Creates a form in one of the four placements.

        Args:
            team_id:   create inside this team (edit on the team required)
            folder_id: create inside this folder (edit on the folder required);
                       with team_id, the folder must belong to that team, and
                       without it, the folder must be personal

        Raises:
            NotFoundError: team, folder or acting user does not exist
            AccessDeniedError: missing edit on the target team or folder
            ConflictError: folder and team do not match
        """
        with database_errors("create form"):
            await get_or_404(db, User, actor_id, "user")
            if folder_id is not None:
                folder = await get_or_404(db, Folder, folder_id, "folder")
                if folder.team_id != team_id:
                    raise ConflictError(
                        message="The folder does not belong to the requested team"
                        if team_id else "The folder belongs to a team; create the form in that team",
                        context={"folder_id": str(folder_id), "team_id": str(team_id)},
                    )
                folder_permissions = await self.store.load(db, ResourceType.FOLDER, folder_id)
                ensure_capability(actor_id, folder_permissions, Capability.EDIT, "folder", folder_id)
            if team_id is not None:
                await get_or_404(db, Team, team_id, "team")
                if folder_id is None:
                    team_permissions = await self.store.load(db, ResourceType.TEAM, team_id)
                    ensure_capability(actor_id, team_permissions, Capability.EDIT, "team", team_id)
                member_ids = await self.membership.member_ids(db, team_id)
                permissions = uniform_map(member_ids, FULL_ACCESS)
                origin = GrantOrigin.TEAM
            else:
                permissions = {actor_id: FULL_ACCESS}
                origin = GrantOrigin.OWNER

            async with atomic(db):
                form = Form(
                    title=data.title,
                    logo_url=data.logo_url,
                    settings=data.settings,
                    elements=dump_elements(data.elements),
                    creator_id=actor_id,
                    team_id=team_id,
                    folder_id=folder_id,
                )
                db.add(form)
                await db.flush()
                await self.store.replace(db, ResourceType.FORM, form.id, permissions, origin)
            logger.info(
                "Form %s created by %s (team=%s, folder=%s, %d grantee(s))",
                form.id, actor_id, team_id, folder_id, len(permissions),
            )
            return form_read(form, permissions)

    # ── Reading & editing ─────────────────────────────────────────────────

    async def get_form(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID) -> FormRead:
        with database_errors("retrieve form", form_id=form_id):
            form, permissions = await self.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.VIEW, "form", form_id)
            return form_read(form, permissions, await self.is_favourite(db, form_id, actor_id))

    async def update_form(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, data: FormUpdate
    ) -> FormRead:
        with database_errors("update form", form_id=form_id):
            form, permissions = await self.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.EDIT, "form", form_id)
            changes = data.model_dump(exclude_unset=True, exclude={"elements"})
            for key, value in changes.items():
                if value is not None:
                    setattr(form, key, value)
            if data.elements is not None:
                form.elements = dump_elements(data.elements)
            await db.flush()
            self.outbox.stage(db, RealtimeEvent(str(form_id), FORM_UPDATE, {"updated_by": str(actor_id)}))
            logger.info("Form %s updated by %s", form_id, actor_id)
            return form_read(form, permissions, await self.is_favourite(db, form_id, actor_id))

    async def list_forms(
        self,
        db: AsyncSession,
        actor_id: uuid.UUID,
        search: str = "",
        is_deleted: bool = False,
        is_favourite: bool = False,
        is_shared: bool = False,
        folder_id: Optional[uuid.UUID] = None,
        team_id: Optional[uuid.UUID] = None,
        sort_by: str = "created_at",
        sort_direction: str = "desc",
        page: int = 1,
        page_size: int = settings.default_page_size,
    ) -> FormListResponse:
        """
        Paginated form listing for the requesting user.

        Raises:
            ValidationError: unknown sort field or direction, page < 1,
                             page_size outside 1..max_page_size
            NotFoundError: folder_id / team_id does not exist (owned listing only)
        """
        if sort_by not in SORT_FIELDS:
            raise ValidationError(
                message=f"Invalid sort field '{sort_by}'. Must be one of: {sorted(SORT_FIELDS)}",
                field="sort_by",
            )
        if sort_direction not in SORT_DIRECTIONS:
            raise ValidationError(
                message=f"Invalid sort direction '{sort_direction}'. Must be 'asc' or 'desc'",
                field="sort_direction",
            )
        if page < 1:
            raise ValidationError(message="page must be 1 or greater", field="page")
        if not 1 <= page_size <= settings.max_page_size:
            raise ValidationError(
                message=f"page_size must be between 1 and {settings.max_page_size}",
                field="page_size",
            )

        with database_errors("list forms", user_id=actor_id):
            def holding(capability: Capability):
                return select(PermissionGrant.resource_id).where(
                    PermissionGrant.resource_type == ResourceType.FORM.value,
                    PermissionGrant.user_id == actor_id,
                    PermissionGrant.capability == capability.value,
                )

            conditions = []
            if is_shared:
                conditions += [
                    Form.id.in_(holding(Capability.VIEW)),
                    Form.id.not_in(holding(Capability.DELETE)),
                    Form.deleted_at.is_(None),
                ]
            else:
                if folder_id is not None:
                    await get_or_404(db, Folder, folder_id, "folder")
                    conditions.append(Form.folder_id == folder_id)
                if team_id is not None:
                    await get_or_404(db, Team, team_id, "team")
                    conditions.append(Form.team_id == team_id)
                else:
                    conditions.append(Form.team_id.is_(None))
                conditions += [
                    Form.id.in_(holding(Capability.DELETE)),
                    Form.deleted_at.is_not(None) if is_deleted else Form.deleted_at.is_(None),
                ]
                if is_favourite:
                    conditions.append(
                        Form.id.in_(
                            select(form_favourites.c.form_id).where(form_favourites.c.user_id == actor_id)
                        )
                    )
            if search:
                conditions.append(func.lower(Form.title).contains(search.lower(), autoescape=True))

            total_count = (
                await db.execute(select(func.count(Form.id)).where(*conditions))
            ).scalar() or 0

            order = SORT_DIRECTIONS[sort_direction]
            result = await db.execute(
                select(Form)
                .where(*conditions)
                .order_by(order(SORT_FIELDS[sort_by]), order(Form.id))
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            forms = list(result.scalars().all())

            favourites = set()
            if forms:
                fav_result = await db.execute(
                    select(form_favourites.c.form_id).where(
                        form_favourites.c.user_id == actor_id,
                        form_favourites.c.form_id.in_([f.id for f in forms]),
                    )
                )
                favourites = set(fav_result.scalars().all())
            owned = set()
            if forms:
                owned_result = await db.execute(
                    holding(Capability.DELETE).where(PermissionGrant.resource_id.in_([f.id for f in forms]))
                )
                owned = set(owned_result.scalars().all())

            items = [
                FormListItem(
                    id=form.id,
                    title=form.title,
                    logo_url=form.logo_url,
                    creator_id=form.creator_id,
                    folder_id=form.folder_id,
                    team_id=form.team_id,
                    deleted_at=form.deleted_at,
                    disabled=form.disabled,
                    total_submissions=form.total_submissions,
                    created_at=form.created_at,
                    updated_at=form.updated_at,
                    is_favourite=form.id in favourites,
                    is_owner=form.id in owned,
                )
                for form in forms
            ]
            return FormListResponse(
                forms=items,
                total_count=total_count,
                total_pages=math.ceil(total_count / page_size),
                page=page,
                page_size=page_size,
            )

    # ── Trash ─────────────────────────────────────────────────────────────

    async def delete_form(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID) -> Optional[FormRead]:
        """
        First call moves the form to the trash and returns it; a call on a
        trashed form deletes it and all of its responses for good and returns None.
        """
        with database_errors("delete form", form_id=form_id):
            form, permissions = await self.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.DELETE, "form", form_id)
            if form.deleted_at is None:
                form.deleted_at = utcnow()
                await db.flush()
                logger.info("Form %s moved to trash by %s", form_id, actor_id)
                return form_read(form, permissions, await self.is_favourite(db, form_id, actor_id))

            async with atomic(db):
                await purge_forms(db, self.store, [form_id])
            logger.info("Form %s permanently deleted by %s", form_id, actor_id)
            return None

    async def restore_form(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID) -> FormRead:
        with database_errors("restore form", form_id=form_id):
            form, permissions = await self.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.DELETE, "form", form_id)
            form.deleted_at = None
            await db.flush()
            logger.info("Form %s restored by %s", form_id, actor_id)
            return form_read(form, permissions, await self.is_favourite(db, form_id, actor_id))

    # ── Members ───────────────────────────────────────────────────────────

    async def list_members(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID) -> List[UserRead]:
        """Every user holding any capability on the form."""
        with database_errors("list form members", form_id=form_id):
            _, permissions = await self.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.VIEW, "form", form_id)
            if not permissions:
                return []
            result = await db.execute(
                select(User).where(User.id.in_(list(permissions))).order_by(User.username)
            )
            return [UserRead.model_validate(user) for user in result.scalars().all()]

    async def invite_member(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, email: str
    ) -> InvitationRead:
        """Grants the invitee view and edit on this one form and emails them a link."""
        with database_errors("invite form member", form_id=form_id):
            form, permissions = await self.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.EDIT, "form", form_id)
            invitee = await self.users.get_by_email(db, email)
            if invitee.id in permissions:
                raise ConflictError(
                    message=f"{invitee.email} is already a member of this form",
                    context={"form_id": str(form_id), "user_id": str(invitee.id)},
                )
            await self.store.set_entry(
                db, ResourceType.FORM, [form_id], invitee.id, INVITED_MEMBER_ACCESS, GrantOrigin.DIRECT
            )
            inviter = await get_or_404(db, User, actor_id, "user")
            invite_url = f"{settings.frontend_url}/build/{form_id}"
            self.outbox.stage(db, form_invitation_email(invitee.email, inviter.username, form.title, invite_url))
            logger.info("User %s invited %s to form %s", actor_id, invitee.id, form_id)
            return InvitationRead(email=invitee.email, invite_url=invite_url)

    async def remove_members(
        self,
        db: AsyncSession,
        actor_id: uuid.UUID,
        form_id: uuid.UUID,
        member_ids: Sequence[uuid.UUID],
    ) -> List[UserRead]:
        """
        Raises:
            AccessDeniedError: caller lacks edit, or the form creator is listed
            NotFoundError: a listed user does not exist
            ConflictError: a listed user holds nothing on the form
        """
        with database_errors("remove form members", form_id=form_id):
            form, permissions = await self.load(db, form_id)
            ensure_capability(actor_id, permissions, Capability.EDIT, "form", form_id)
            for member_id in member_ids:
                if member_id == form.creator_id:
                    raise AccessDeniedError(
                        message="The form creator cannot be removed from the form",
                        required="creator",
                        context={"form_id": str(form_id)},
                    )
                if await db.get(User, member_id) is None:
                    raise NotFoundError(resource="user", resource_id=str(member_id))
                if member_id not in permissions:
                    raise ConflictError(
                        message="User is not a member of this form",
                        context={"form_id": str(form_id), "user_id": str(member_id)},
                    )
            await self.store.revoke(db, ResourceType.FORM, [form_id], member_ids)
            logger.info("Removed %d member(s) from form %s", len(member_ids), form_id)
            remaining = await self.store.load(db, ResourceType.FORM, form_id)
            if not remaining:
                return []
            result = await db.execute(
                select(User).where(User.id.in_(list(remaining))).order_by(User.username)
            )
            return [UserRead.model_validate(user) for user in result.scalars().all()]

    # ── Availability (creator only) ───────────────────────────────────────

    async def _creator_update(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, **values) -> FormRead:
        form, permissions = await self.load(db, form_id)
        ensure_creator(actor_id, form.creator_id, "form", form_id)
        for key, value in values.items():
            setattr(form, key, value)
        await db.flush()
        logger.info("Form %s availability changed by %s: %s", form_id, actor_id, values)
        return form_read(form, permissions, await self.is_favourite(db, form_id, actor_id))

    async def set_disabled(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, disabled: bool) -> FormRead:
        with database_errors("update form status", form_id=form_id):
            return await self._creator_update(db, actor_id, form_id, disabled=disabled)

    async def set_disabled_date(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, data: DisabledDateUpdate
    ) -> FormRead:
        with database_errors("schedule form closing", form_id=form_id):
            return await self._creator_update(
                db,
                actor_id,
                form_id,
                disabled_on_specific_date=data.disabled_on_specific_date,
                disabled_date=data.disabled_date if data.disabled_on_specific_date else None,
            )

    async def set_disabled_notification(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, disabled_notification: bool
    ) -> FormRead:
        with database_errors("update form notifications", form_id=form_id):
            return await self._creator_update(
                db, actor_id, form_id, disabled_notification=disabled_notification
            )
