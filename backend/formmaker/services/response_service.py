"""
Formmaker Backend — Response Service
======================================

What:  Collects submissions to a form and serves them back to its editors.
Who:   /api/responses router. Submitting is public; reading needs view on
       the form and deleting needs edit.

Counter Invariant:
    form.total_submissions always equals the number of stored responses.
    Every insert or delete and the matching counter update run in one
    atomic() block, so a failure leaves both untouched.

Listing Pipeline:
    1. Validate sort, pagination and every filter against the form's elements
    2. No search and no filters → page straight from SQL (ORDER BY/OFFSET/LIMIT)
       Otherwise → load the form's responses, filter in Python, then page
    3. Decorate each answer with its element label and field name

Filter Syntax:
    <elementId>:<fieldName>:<value>          answer text contains value (case-insensitive)
    <elementId>:<fieldName>:<from>:<to>      answer text is an ISO date within [from, to];
                                             either bound may be empty
    Anything else after the second colon is a value, colons included.
"""

import logging
import math
import re
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import asc, delete, desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.config import settings
from formmaker.database import atomic
from formmaker.exceptions import ConflictError, NotFoundError, ValidationError
from formmaker.models.form import Form
from formmaker.models.response import Response
from formmaker.models.user import User
from formmaker.permissions import Capability, ResourceType
from formmaker.schemas.response import (
    DecoratedAnswer,
    DecoratedFormAnswer,
    LabelledElement,
    ResponseCreate,
    ResponseListResponse,
    ResponseRead,
)
from formmaker.services.base import database_errors, ensure_capability, get_or_404
from formmaker.services.mail_service import new_response_email
from formmaker.services.outbox import Outbox
from formmaker.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)

DEFAULT_ELEMENT_NAME = "Field Label"
LABEL_KEY = "fieldLabel"

SORT_FIELDS = {"created_at": Response.created_at, "index": Response.index}
SORT_DIRECTIONS = {"asc": asc, "desc": desc}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ══════════════════════════════════════════════════════════════════════════
# Filters
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FieldFilter:
    element_id: str
    field_id: str
    value: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @property
    def is_date_range(self) -> bool:
        return self.value is None

    def matches(self, form_answers: List[Dict[str, Any]]) -> bool:
        for element_answer in form_answers:
            if element_answer.get("elementId") != self.element_id:
                continue
            for answer in element_answer.get("answers", []):
                if answer.get("fieldId") != self.field_id:
                    continue
                if self._matches_text(str(answer.get("text", ""))):
                    return True
        return False

    def _matches_text(self, text: str) -> bool:
        if not self.is_date_range:
            return self.value.lower() in text.lower()
        try:
            answered = date.fromisoformat(text.strip()[:10])
        except ValueError:
            return False
        if self.date_from and answered < self.date_from:
            return False
        if self.date_to and answered > self.date_to:
            return False
        return True


def _parse_date(raw: str, expression: str) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(
            message=f"Invalid date '{raw}' in filter '{expression}'. Use YYYY-MM-DD",
            field="filters",
        )


def parse_filter(expression: str, elements: Sequence[Dict[str, Any]]) -> FieldFilter:
    """
    Parses one filter expression against the form's elements.

    Everything after the second colon is the value, so values may contain
    colons ("10:30"). The value is read as a date range only when it is
    exactly two ISO dates (either may be empty) joined by one colon.

    Raises:
        ValidationError: missing parts, unknown element id, unknown field
                         name, or an invalid or inverted date range
    """
    parts = expression.split(":", 2)
    if len(parts) != 3 or not parts[0] or not parts[1]:
        raise ValidationError(
            message=f"Malformed filter '{expression}'. Expected elementId:fieldName:value "
                    "or elementId:fieldName:from:to",
            field="filters",
        )
    element_id, field_name, rest = parts
    element = next((e for e in elements if str(e.get("id")) == element_id), None)
    if element is None:
        raise ValidationError(
            message=f"Filter '{expression}' refers to an element this form does not have",
            field="filters",
            context={"element_id": element_id},
        )
    field = next((f for f in element.get("fields", []) if f.get("name") == field_name), None)
    if field is None:
        raise ValidationError(
            message=f"Filter '{expression}' refers to a field this element does not have",
            field="filters",
            context={"element_id": element_id, "field_name": field_name},
        )
    field_id = str(field.get("id"))
    bounds = rest.split(":")
    if len(bounds) != 2 or not all(not b or _ISO_DATE.match(b) for b in bounds):
        return FieldFilter(element_id=element_id, field_id=field_id, value=rest)
    date_from = _parse_date(bounds[0], expression)
    date_to = _parse_date(bounds[1], expression)
    if date_from and date_to and date_from > date_to:
        raise ValidationError(
            message=f"Filter '{expression}' has its start date after its end date",
            field="filters",
        )
    return FieldFilter(element_id=element_id, field_id=field_id, date_from=date_from, date_to=date_to)


def _matches_search(form_answers: List[Dict[str, Any]], search: str) -> bool:
    needle = search.lower()
    return any(
        needle in str(answer.get("text", "")).lower()
        for element_answer in form_answers
        for answer in element_answer.get("answers", [])
    )


# ══════════════════════════════════════════════════════════════════════════
# Decoration
# ══════════════════════════════════════════════════════════════════════════


def element_name(element: Dict[str, Any]) -> str:
    """Label of an element: the first config key containing "fieldLabel"."""
    config = element.get("config") or {}
    label_key = next((key for key in config if LABEL_KEY in key), None)
    if label_key is None:
        return DEFAULT_ELEMENT_NAME
    return str(config[label_key])


def labelled_elements(elements: Sequence[Dict[str, Any]]) -> List[LabelledElement]:
    """Elements carrying a fieldLabel, top to bottom as laid out on the grid."""
    labelled = [e for e in elements if LABEL_KEY in (e.get("config") or {})]
    labelled.sort(key=lambda e: (e.get("gridSize") or {}).get("y", 0))
    return [
        LabelledElement(element_id=str(e["id"]), element_name=str(e["config"][LABEL_KEY]))
        for e in labelled
    ]


def decorate(response: Response, elements_by_id: Dict[str, Dict[str, Any]]) -> ResponseRead:
    """Answers to elements no longer on the form are left out."""
    decorated = []
    for element_answer in response.form_answers or []:
        element = elements_by_id.get(str(element_answer.get("elementId")))
        if element is None:
            continue
        field_names = {str(f.get("id")): f.get("name") for f in element.get("fields", [])}
        decorated.append(
            DecoratedFormAnswer(
                element_id=str(element_answer["elementId"]),
                element_name=element_name(element),
                answers=[
                    DecoratedAnswer(
                        field_id=str(answer.get("fieldId")),
                        field_name=field_names.get(str(answer.get("fieldId"))),
                        text=str(answer.get("text", "")),
                    )
                    for answer in element_answer.get("answers", [])
                ],
            )
        )
    return ResponseRead(
        id=response.id,
        form_id=response.form_id,
        index=response.index,
        created_at=response.created_at,
        form_answers=decorated,
    )


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════


class ResponseService:

    def __init__(self, store: PermissionStore, outbox: Outbox):
        self.store = store
        self.outbox = outbox

    async def _form_for(self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, capability: Capability) -> Form:
        form = await get_or_404(db, Form, form_id, "form")
        permissions = await self.store.load(db, ResourceType.FORM, form_id)
        ensure_capability(actor_id, permissions, capability, "form", form_id)
        return form

    async def create_response(self, db: AsyncSession, form_id: uuid.UUID, data: ResponseCreate) -> ResponseRead:
        """
        Stores a submission and bumps the form's counter.

        Raises:
            NotFoundError: the form does not exist
            ConflictError: the form is disabled, past its closing date, or in the trash
        """
        with database_errors("submit response", form_id=form_id):
            form = await get_or_404(db, Form, form_id, "form")
            if not form.is_accepting_responses():
                logger.warning("Rejected response to form %s: not accepting responses", form_id)
                raise ConflictError(
                    message="This form is not accepting responses",
                    context={"form_id": str(form_id)},
                )
            async with atomic(db):
                await db.execute(
                    update(Form)
                    .where(Form.id == form_id)
                    .values(total_submissions=Form.total_submissions + 1)
                )
                index = (
                    await db.execute(select(Form.total_submissions).where(Form.id == form_id))
                ).scalar_one()
                response = Response(form_id=form_id, index=index, form_answers=data.stored_answers())
                db.add(response)
            logger.info("Response #%d stored for form %s", index, form_id)

            if not form.disabled_notification:
                creator = await db.get(User, form.creator_id)
                if creator is not None:
                    self.outbox.stage(
                        db,
                        new_response_email(
                            creator.email,
                            form.title,
                            index,
                            f"{settings.frontend_url}/responses/{form_id}",
                        ),
                    )
            elements_by_id = {str(e.get("id")): e for e in form.elements or []}
            return decorate(response, elements_by_id)

    async def list_responses(
        self,
        db: AsyncSession,
        actor_id: uuid.UUID,
        form_id: uuid.UUID,
        search: str = "",
        filters: Sequence[str] = (),
        sort_by: str = "created_at",
        sort_direction: str = "asc",
        page: int = 1,
        page_size: int = settings.default_page_size,
    ) -> ResponseListResponse:
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

        with database_errors("list responses", form_id=form_id):
            form = await self._form_for(db, actor_id, form_id, Capability.VIEW)
            elements = list(form.elements or [])
            parsed = [parse_filter(expression, elements) for expression in filters if expression]
            order = SORT_DIRECTIONS[sort_direction]
            query = (
                select(Response)
                .where(Response.form_id == form_id)
                .order_by(order(SORT_FIELDS[sort_by]), order(Response.index))
            )
            offset = (page - 1) * page_size

            if not search and not parsed:
                total_count = form.total_submissions
                result = await db.execute(query.offset(offset).limit(page_size))
                page_items = list(result.scalars().all())
            else:
                result = await db.execute(query)
                matching = [
                    response
                    for response in result.scalars().all()
                    if (not search or _matches_search(response.form_answers or [], search))
                    and all(f.matches(response.form_answers or []) for f in parsed)
                ]
                total_count = len(matching)
                page_items = matching[offset:offset + page_size]

            elements_by_id = {str(e.get("id")): e for e in elements}
            return ResponseListResponse(
                responses=[decorate(response, elements_by_id) for response in page_items],
                total_count=total_count,
                total_pages=math.ceil(total_count / page_size),
                page=page,
                page_size=page_size,
                labelled_elements=labelled_elements(elements),
            )

    async def delete_response(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, response_id: uuid.UUID
    ) -> int:
        with database_errors("delete response", response_id=response_id):
            await self._form_for(db, actor_id, form_id, Capability.EDIT)
            response = await db.get(Response, response_id)
            if response is None or response.form_id != form_id:
                raise NotFoundError(resource="response", resource_id=str(response_id))
            return await self._delete(db, form_id, [response_id])

    async def delete_multiple_responses(
        self, db: AsyncSession, actor_id: uuid.UUID, form_id: uuid.UUID, response_ids: Sequence[uuid.UUID]
    ) -> int:
        """
        Deletes the listed responses that belong to the form; ids that do not
        are ignored. Returns how many were removed.
        """
        with database_errors("delete responses", form_id=form_id):
            await self._form_for(db, actor_id, form_id, Capability.EDIT)
            return await self._delete(db, form_id, response_ids)

    async def _delete(self, db: AsyncSession, form_id: uuid.UUID, response_ids: Sequence[uuid.UUID]) -> int:
        async with atomic(db):
            result = await db.execute(
                select(Response.id).where(
                    Response.form_id == form_id,
                    Response.id.in_(list(response_ids)),
                )
            )
            found = list(result.scalars().all())
            if not found:
                return 0
            await db.execute(
                delete(Response)
                .where(Response.id.in_(found))
                .execution_options(synchronize_session="fetch")
            )
            await db.execute(
                update(Form)
                .where(Form.id == form_id)
                .values(total_submissions=Form.total_submissions - len(found))
            )
        logger.info("Deleted %d response(s) of form %s", len(found), form_id)
        return len(found)
