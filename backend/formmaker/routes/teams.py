"""
Formmaker Backend — Team Route Handlers
=========================================

What:  Team lifecycle, invitations, membership changes and team folders.
How:   Every handler delegates to TeamService / FolderService; membership
       changes run through the propagation engine so that the team's forms
       and folders follow the member list.

Route Inventory:
    GET    /api/teams                         teams the caller belongs to
    POST   /api/teams                         create a team
    GET    /api/teams/{id}                    team with members
    PATCH  /api/teams/{id}                    rename / change logo
    DELETE /api/teams/{id}                    delete team and everything in it
    POST   /api/teams/{id}/invitations        email an invitation link
    POST   /api/teams/{id}/invitations/accept join through an invitation token
    POST   /api/teams/{id}/members            add a member by email
    DELETE /api/teams/{id}/members            remove members, or leave the team
    GET    /api/teams/{id}/folders            team folders
    POST   /api/teams/{id}/folders            create a team folder
    POST   /api/teams/{id}/forms              create a form inside the team
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.container import Services
from formmaker.database import get_db_session
from formmaker.dependencies import get_current_user_id, get_services
from formmaker.schemas.common import MessageResponse, error_responses
from formmaker.schemas.folder import FolderCreate, FolderRead
from formmaker.schemas.form import FormCreate, FormRead
from formmaker.schemas.team import (
    InvitationAccept,
    InvitationRead,
    TeamCreate,
    TeamDetail,
    TeamMembersRemove,
    TeamRead,
    TeamUpdate,
)
from formmaker.schemas.user import MemberEmail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teams", tags=["Teams"])


@router.get("", response_model=List[TeamRead], responses=error_responses(403), summary="List my teams")
async def list_teams(
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> List[TeamRead]:
    return await services.teams.list_my_teams(db, actor_id)


@router.post(
    "",
    response_model=TeamRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(403),
    summary="Create a team",
    description="The caller becomes the creator and first member, with full access.",
)
async def create_team(
    data: TeamCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> TeamRead:
    return await services.teams.create_team(db, actor_id, data)


@router.get("/{team_id}", response_model=TeamDetail, responses=error_responses(403, 404), summary="Get a team")
async def get_team(
    team_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> TeamDetail:
    return await services.teams.get_team(db, actor_id, team_id)


@router.patch("/{team_id}", response_model=TeamRead, responses=error_responses(403, 404), summary="Update a team")
async def update_team(
    team_id: UUID,
    data: TeamUpdate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> TeamRead:
    return await services.teams.update_team(db, actor_id, team_id, data)


@router.delete(
    "/{team_id}",
    response_model=MessageResponse,
    responses=error_responses(403, 404),
    summary="Delete a team",
    description=(
        "Creator only. Hard-deletes the team together with its folders, its forms "
        "and their responses."
    ),
)
async def delete_team(
    team_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> MessageResponse:
    await services.teams.delete_team(db, actor_id, team_id)
    return MessageResponse(message="Team deleted")


@router.post(
    "/{team_id}/invitations",
    response_model=InvitationRead,
    responses=error_responses(403, 404, 409),
    summary="Invite a user to the team",
    description=(
        "Records a single-use invitation and emails its link. The address does not "
        "need an account yet."
    ),
)
async def invite_member(
    team_id: UUID,
    data: MemberEmail,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> InvitationRead:
    return await services.teams.invite_member(db, actor_id, team_id, data.email)


@router.post(
    "/{team_id}/invitations/accept",
    response_model=TeamDetail,
    responses=error_responses(403, 404, 409),
    summary="Accept a team invitation",
    description=(
        "Joins the caller to the team. The caller must be signed in with the "
        "invited email address; invitations are single-use and expire."
    ),
)
async def accept_invitation(
    team_id: UUID,
    data: InvitationAccept,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> TeamDetail:
    return await services.teams.accept_invitation(db, actor_id, team_id, data.token)


@router.post(
    "/{team_id}/members",
    response_model=TeamDetail,
    responses=error_responses(403, 404, 409),
    summary="Add a member",
    description="Grants the new member access to every form and folder of the team.",
)
async def add_member(
    team_id: UUID,
    data: MemberEmail,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> TeamDetail:
    return await services.teams.add_member(db, actor_id, team_id, data.email)


@router.delete(
    "/{team_id}/members",
    response_model=TeamDetail,
    responses=error_responses(403, 404, 409),
    summary="Remove members",
    description=(
        "Revokes the removed users' access on the team, its forms and its folders. "
        "Needs edit on the team, except when members remove only themselves."
    ),
)
async def remove_members(
    team_id: UUID,
    data: TeamMembersRemove,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> TeamDetail:
    return await services.teams.remove_members(db, actor_id, team_id, data.member_ids)


@router.get(
    "/{team_id}/folders",
    response_model=List[FolderRead],
    responses=error_responses(403, 404),
    summary="List team folders",
)
async def list_team_folders(
    team_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> List[FolderRead]:
    return await services.folders.list_team_folders(db, actor_id, team_id)


@router.post(
    "/{team_id}/folders",
    response_model=FolderRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(403, 404),
    summary="Create a team folder",
)
async def create_team_folder(
    team_id: UUID,
    data: FolderCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FolderRead:
    return await services.folders.create_team_folder(db, actor_id, team_id, data)


@router.post(
    "/{team_id}/forms",
    response_model=FormRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(403, 404),
    summary="Create a team form",
    description="Every current member of the team receives full access to the new form.",
)
async def create_team_form(
    team_id: UUID,
    data: FormCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    return await services.forms.create_form(db, actor_id, data, team_id=team_id)
