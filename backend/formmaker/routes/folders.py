"""
Formmaker Backend — Folder Route Handlers
===========================================

What:  Personal folders, folder detail and folder deletion. Team folders are
       created and listed under /api/teams/{id}/folders.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.container import Services
from formmaker.database import get_db_session
from formmaker.dependencies import get_current_user_id, get_services
from formmaker.schemas.common import DeletedCount, error_responses
from formmaker.schemas.folder import FolderCreate, FolderDetail, FolderRead, FolderUpdate
from formmaker.schemas.form import FormCreate, FormRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/folders", tags=["Folders"])


@router.get("", response_model=List[FolderRead], responses=error_responses(403), summary="List my personal folders")
async def list_folders(
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> List[FolderRead]:
    return await services.folders.list_my_folders(db, actor_id)


@router.post(
    "",
    response_model=FolderRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(403),
    summary="Create a personal folder",
)
async def create_folder(
    data: FolderCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FolderRead:
    return await services.folders.create_personal_folder(db, actor_id, data)


@router.get(
    "/{folder_id}",
    response_model=FolderDetail,
    responses=error_responses(403, 404),
    summary="Get a folder with its forms",
)
async def get_folder(
    folder_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FolderDetail:
    return await services.folders.get_folder(db, actor_id, folder_id)


@router.patch("/{folder_id}", response_model=FolderRead, responses=error_responses(403, 404), summary="Update a folder")
async def update_folder(
    folder_id: UUID,
    data: FolderUpdate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FolderRead:
    return await services.folders.update_folder(db, actor_id, folder_id, data)


@router.delete(
    "/{folder_id}",
    response_model=DeletedCount,
    responses=error_responses(403, 404),
    summary="Delete a folder",
    description="Hard-deletes the folder and every form in it; returns how many forms were removed.",
)
async def delete_folder(
    folder_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> DeletedCount:
    removed = await services.folders.delete_folder(db, actor_id, folder_id)
    return DeletedCount(deleted_count=removed)


@router.post(
    "/{folder_id}/forms",
    response_model=FormRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(403, 404, 409),
    summary="Create a form inside a folder",
    description="The form joins the folder's team when the folder belongs to one.",
)
async def create_folder_form(
    folder_id: UUID,
    data: FormCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> FormRead:
    folder = await services.folders.get_folder(db, actor_id, folder_id)
    return await services.forms.create_form(db, actor_id, data, team_id=folder.team_id, folder_id=folder_id)
