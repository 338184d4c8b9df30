"""
Formmaker Backend — Form Route Handlers
=========================================

What:  Form lifecycle, listing, trash, members, availability and placement.
How:   Thin handlers over FormService and PlacementService. Forms inside a
       team or folder are created through /api/teams/{id}/forms and
       /api/folders/{id}/forms; this router creates personal forms.

Listing Semantics (GET /api/forms):
    - default:   forms the caller owns (holds delete on), optionally scoped to a
                 team or folder, trashed or live
    - shared:    live forms the caller can view but does not own
    - favourite: narrows either of the above to the caller's favourites
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.config import settings
from formmaker.container import Services
from formmaker.database import get_db_session
from formmaker.dependencies import get_current_user_id, get_services
from formmaker.schemas.common import MessageResponse, error_responses
from formmaker.schemas.form import (
    DisabledDateUpdate,
    DisabledNotificationUpdate,
    DisabledStatusUpdate,
    FavouriteToggleResult,
    FolderAssignment,
    FormCreate,
    FormListResponse,
    FormMembersRemove,
    FormRead,
    FormUpdate,
    TeamAssignment,
)
from formmaker.schemas.team import InvitationRead
from formmaker.schemas.user import MemberEmail, UserRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms", tags=["Forms"])


@router.post(
    "",
    response_model=FormRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(403, 404),
    summary="Create a personal form",
)
async def create_form(
    data: FormCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.create_form(db, actor_id, data)


@router.get(
    "",
    response_model=FormListResponse,
    responses=error_responses(400, 403, 404),
    summary="List forms",
    description=(
        "Paginated form listing. Owned forms by default; `is_shared` switches to "
        "forms shared with the caller. Search matches the title, case-insensitively."
    ),
)
async def list_forms(
    search: str = Query(default="", max_length=255, description="Case-insensitive title search"),
    is_deleted: bool = Query(default=False, description="List trashed forms instead of live ones"),
    is_favourite: bool = Query(default=False, description="Only the caller's favourites"),
    is_shared: bool = Query(default=False, description="Forms shared with the caller"),
    folder_id: Optional[UUID] = Query(default=None, description="Restrict to one folder"),
    team_id: Optional[UUID] = Query(default=None, description="Restrict to one team; omitted means personal forms"),
    sort_by: str = Query(default="created_at", description="created_at, updated_at or title"),
    sort_direction: str = Query(default="desc", description="asc or desc"),
    page: int = Query(default=1, description="1-based page number"),
    page_size: int = Query(
        default=settings.default_page_size,
        description=f"Items per page (max {settings.max_page_size})",
    ),
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormListResponse:
    return await services.forms.list_forms(
        db,
        actor_id,
        search=search,
        is_deleted=is_deleted,
        is_favourite=is_favourite,
        is_shared=is_shared,
        folder_id=folder_id,
        team_id=team_id,
        sort_by=sort_by,
        sort_direction=sort_direction,
        page=page,
        page_size=page_size,
    )


@router.get("/{form_id}", response_model=FormRead, responses=error_responses(403, 404), summary="Get a form")
async def get_form(
    form_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.get_form(db, actor_id, form_id)


@router.patch(
    "/{form_id}",
    response_model=FormRead,
    responses=error_responses(403, 404),
    summary="Update a form",
    description="Saves title, logo, settings and elements. Viewers of the form receive a formUpdate event.",
)
async def update_form(
    form_id: UUID,
    data: FormUpdate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.update_form(db, actor_id, form_id, data)


@router.delete(
    "/{form_id}",
    response_model=MessageResponse,
    responses=error_responses(403, 404),
    summary="Trash or permanently delete a form",
    description=(
        "A live form is moved to the trash. Deleting a form that is already in the "
        "trash removes it and its responses permanently."
    ),
)
async def delete_form(
    form_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> MessageResponse:
    trashed = await services.forms.delete_form(db, actor_id, form_id)
    if trashed is None:
        return MessageResponse(message="Form permanently deleted")
    return MessageResponse(message="Form moved to trash")


@router.post(
    "/{form_id}/restore",
    response_model=FormRead,
    responses=error_responses(403, 404),
    summary="Restore a form from the trash",
)
async def restore_form(
    form_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.restore_form(db, actor_id, form_id)


# ── Members ───────────────────────────────────────────────────────────────


@router.get(
    "/{form_id}/members",
    response_model=List[UserRead],
    responses=error_responses(403, 404),
    summary="List users with access to the form",
)
async def list_members(
    form_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> List[UserRead]:
    return await services.forms.list_members(db, actor_id, form_id)


@router.post(
    "/{form_id}/invitations",
    response_model=InvitationRead,
    responses=error_responses(403, 404, 409),
    summary="Invite a user to the form",
    description="The invitee receives view and edit on this form and an email linking to it.",
)
async def invite_member(
    form_id: UUID,
    data: MemberEmail,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> InvitationRead:
    return await services.forms.invite_member(db, actor_id, form_id, data.email)


@router.delete(
    "/{form_id}/members",
    response_model=List[UserRead],
    responses=error_responses(403, 404, 409),
    summary="Remove users from the form",
)
async def remove_members(
    form_id: UUID,
    data: FormMembersRemove,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> List[UserRead]:
    return await services.forms.remove_members(db, actor_id, form_id, data.member_ids)


# ── Availability ──────────────────────────────────────────────────────────


@router.put(
    "/{form_id}/disabled",
    response_model=FormRead,
    responses=error_responses(403, 404),
    summary="Open or close the form for responses",
)
async def set_disabled(
    form_id: UUID,
    data: DisabledStatusUpdate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.set_disabled(db, actor_id, form_id, data.disabled)


@router.put(
    "/{form_id}/disabled-date",
    response_model=FormRead,
    responses=error_responses(403, 404),
    summary="Schedule the form to close",
)
async def set_disabled_date(
    form_id: UUID,
    data: DisabledDateUpdate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.set_disabled_date(db, actor_id, form_id, data)


@router.put(
    "/{form_id}/disabled-notification",
    response_model=FormRead,
    responses=error_responses(403, 404),
    summary="Mute or unmute new-response emails",
)
async def set_disabled_notification(
    form_id: UUID,
    data: DisabledNotificationUpdate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.set_disabled_notification(db, actor_id, form_id, data.disabled_notification)


# ── Placement ─────────────────────────────────────────────────────────────


@router.post(
    "/{form_id}/favourite",
    response_model=FavouriteToggleResult,
    responses=error_responses(403, 404),
    summary="Toggle the form in the caller's favourites",
)
async def toggle_favourite(
    form_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FavouriteToggleResult:
    return await services.placement.toggle_favourite(db, actor_id, form_id)


@router.put(
    "/{form_id}/folder",
    response_model=FormRead,
    responses=error_responses(403, 404, 409),
    summary="Put the form in a folder",
    description="The folder must be in the same team as the form (or both personal).",
)
async def add_to_folder(
    form_id: UUID,
    data: FolderAssignment,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.placement.add_to_folder(db, actor_id, form_id, data.folder_id)


@router.delete(
    "/{form_id}/folder/{folder_id}",
    response_model=FormRead,
    responses=error_responses(403, 404, 409),
    summary="Take the form out of a folder",
)
async def remove_from_folder(
    form_id: UUID,
    folder_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.placement.remove_from_folder(db, actor_id, form_id, folder_id)


@router.put(
    "/{form_id}/team",
    response_model=FormRead,
    responses=error_responses(403, 404),
    summary="Move the form into a team",
    description="Access is replaced by full access for every member of the target team.",
)
async def move_to_team(
    form_id: UUID,
    data: TeamAssignment,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.placement.move_to_team(db, actor_id, form_id, data.team_id)


@router.delete(
    "/{form_id}/team",
    response_model=FormRead,
    responses=error_responses(403, 404, 409),
    summary="Move the form back to the creator's personal forms",
)
async def move_back_to_my_forms(
    form_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.placement.move_back_to_my_forms(db, actor_id, form_id)
