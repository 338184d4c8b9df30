"""
Formmaker Backend — Response Schemas
======================================

What:  Submission payloads and the decorated listing returned to form owners.

Stored answers use the camelCase keys `elementId` / `fieldId`; both the
camelCase and snake_case spellings are accepted on input.

Listing filters (the repeatable `filters` query parameter, ANDed together):
    filters=<elementId>:<fieldName>:<value>        case-insensitive containment
    filters=<elementId>:<fieldName>:<from>:<to>    ISO dates, either bound optional
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AnswerIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field_id: str = Field(alias="fieldId", min_length=1)
    text: str = Field(default="", max_length=10_000)


class FormAnswerIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    element_id: str = Field(alias="elementId", min_length=1)
    answers: List[AnswerIn] = Field(default_factory=list)


class ResponseCreate(BaseModel):
    form_answers: List[FormAnswerIn] = Field(default_factory=list)

    def stored_answers(self) -> List[Dict[str, Any]]:
        return [answer.model_dump(by_alias=True) for answer in self.form_answers]


class ResponsesDelete(BaseModel):
    response_ids: List[uuid.UUID] = Field(min_length=1)


# ── Decorated listing ─────────────────────────────────────────────────────


class DecoratedAnswer(BaseModel):
    field_id: str
    field_name: Optional[str] = None
    text: str


class DecoratedFormAnswer(BaseModel):
    element_id: str
    element_name: Optional[str] = None
    answers: List[DecoratedAnswer]


class ResponseRead(BaseModel):
    id: uuid.UUID
    form_id: uuid.UUID
    index: int
    created_at: datetime
    form_answers: List[DecoratedFormAnswer]


class LabelledElement(BaseModel):
    element_id: str
    element_name: str


class ResponseListResponse(BaseModel):
    responses: List[ResponseRead]
    total_count: int = Field(description="Responses matching the filters, across all pages")
    total_pages: int
    page: int
    page_size: int
    labelled_elements: List[LabelledElement] = Field(
        default_factory=list,
        description="Elements that carry a field label, in grid row order",
    )
