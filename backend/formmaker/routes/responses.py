"""
Formmaker Backend — Response Route Handlers
=============================================

What:  Public submission endpoint plus the owner-side listing and deletion.
Who:   Submissions come from anonymous respondents, so POST needs no
       X-User-ID header. Listing needs view on the form; deletion needs edit.

Filter Syntax (repeatable `filters` query parameter):
    <elementId>:<fieldName>:<value>           answer contains value (case-insensitive)
    <elementId>:<fieldName>:<from>:<to>       answer date within [from, to]; either side may be empty
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.config import settings
from formmaker.container import Services
from formmaker.database import get_db_session
from formmaker.dependencies import get_current_user_id, get_services
from formmaker.schemas.common import DeletedCount, error_responses
from formmaker.schemas.response import (
    ResponseCreate,
    ResponseListResponse,
    ResponseRead,
    ResponsesDelete,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms/{form_id}/responses", tags=["Responses"])


@router.post(
    "",
    response_model=ResponseRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(404, 409),
    summary="Submit a response",
    description=(
        "Stores a submission for an open form. Disabled forms, forms past their "
        "closing date and trashed forms reject submissions with 409."
    ),
)
async def submit_response(
    form_id: UUID,
    data: ResponseCreate,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
) -> ResponseRead:
    return await services.responses.create_response(db, form_id, data)


@router.get(
    "",
    response_model=ResponseListResponse,
    responses=error_responses(400, 403, 404),
    summary="List responses",
)
async def list_responses(
    form_id: UUID,
    search: str = Query(default="", max_length=255, description="Case-insensitive search over all answers"),
    filters: List[str] = Query(default=[], description="Field filters, see module documentation"),
    sort_by: str = Query(default="created_at", description="created_at or index"),
    sort_direction: str = Query(default="asc", description="asc or desc"),
    page: int = Query(default=1, description="1-based page number"),
    page_size: int = Query(
        default=settings.default_page_size,
        description=f"Items per page (max {settings.max_page_size})",
    ),
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> ResponseListResponse:
    return await services.responses.list_responses(
        db,
        actor_id,
        form_id,
        search=search,
        filters=filters,
        sort_by=sort_by,
        sort_direction=sort_direction,
        page=page,
        page_size=page_size,
    )


@router.delete(
    "/{response_id}",
    response_model=DeletedCount,
    responses=error_responses(403, 404),
    summary="Delete one response",
)
async def delete_response(
    form_id: UUID,
    response_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> DeletedCount:
    removed = await services.responses.delete_response(db, actor_id, form_id, response_id)
    return DeletedCount(deleted_count=removed)


@router.post(
    "/delete",
    response_model=DeletedCount,
    responses=error_responses(403, 404),
    summary="Delete several responses",
    description="Ids that do not belong to the form are ignored; the count reflects rows actually removed.",
)
async def delete_responses(
    form_id: UUID,
    data: ResponsesDelete,
    db: AsyncSession = Depends(get_db_session),
    services: Services = Depends(get_services),
    actor_id: UUID = Depends(get_current_user_id),
) -> DeletedCount:
    removed = await services.responses.delete_multiple_responses(db, actor_id, form_id, data.response_ids)
    return DeletedCount(deleted_count=removed)
