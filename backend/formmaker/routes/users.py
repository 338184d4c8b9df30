"""
Formmaker Backend — User Route Handlers
=========================================

What:  Signup, the caller's profile, password and account, and the caller's
       favourite forms.
Who:   Signup is public; the /me endpoints need the X-User-ID header.
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
from formmaker.schemas.form import FormSummary
from formmaker.schemas.user import PasswordChange, UserCreate, UserRead, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(409),
    summary="Register a user",
    description="Creates a user account. Emails are unique, case-insensitively.",
)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
) -> UserRead:
    return await services.users.create_user(db, data)


@router.get(
    "/me",
    response_model=UserRead,
    responses=error_responses(403, 404),
    summary="Current user profile",
)
async def get_me(
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> UserRead:
    return await services.users.get_user(db, actor_id)


@router.get(
    "/me/favourites",
    response_model=List[FormSummary],
    responses=error_responses(403),
    summary="Favourite forms of the current user",
    description="Only forms that are not in the trash and that the user can still view.",
)
async def list_favourites(
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> List[FormSummary]:
    return await services.users.list_favourite_forms(db, actor_id)


@router.patch(
    "/me",
    response_model=UserRead,
    responses=error_responses(400, 403, 404, 409),
    summary="Update the current user's profile",
    description="Partial update of username, email, avatar and organization details.",
)
async def update_me(
    data: UserUpdate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> UserRead:
    return await services.users.update_user(db, actor_id, data)


@router.put(
    "/me/password",
    response_model=MessageResponse,
    responses=error_responses(400, 403, 404),
    summary="Change the current user's password",
    description="The current password must be supplied and correct.",
)
async def change_password(
    data: PasswordChange,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> MessageResponse:
    await services.users.change_password(db, actor_id, data)
    return MessageResponse(message="Password changed")


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    responses=error_responses(403, 404, 409),
    summary="Delete an account",
    description=(
        "Users can delete only their own account. Personal forms and folders are "
        "deleted with it; team content passes to the team creator."
    ),
)
async def delete_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> MessageResponse:
    await services.users.delete_user(db, actor_id, user_id)
    return MessageResponse(message="Account deleted")
