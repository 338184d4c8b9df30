"""
Formmaker Backend — Form Schemas
==================================

What:  Request and response bodies for the /api/forms router, including the
       element descriptors a form is built from.

Element descriptors keep the camelCase keys the frontend editor produces
(`gridSize`); unknown keys are preserved so editor-only metadata survives a
round trip through the API.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ══════════════════════════════════════════════════════════════════════════
# Form Elements
# ══════════════════════════════════════════════════════════════════════════


class ElementField(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    name: str = Field(default="")


class GridSize(BaseModel):
    model_config = ConfigDict(extra="allow")

    x: int = 0
    y: int = 0
    w: int = 1
    h: int = 1


class FormElement(BaseModel):
    """
    One block of a form (a question, a heading, an image...).

    `config` is free-form editor configuration. A key containing "fieldLabel"
    holds the label shown above the element; responses are decorated with it.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    config: Dict[str, Any] = Field(default_factory=dict)
    fields: List[ElementField] = Field(default_factory=list)
    grid_size: GridSize = Field(default_factory=GridSize, alias="gridSize")


def dump_elements(elements: List[FormElement]) -> List[Dict[str, Any]]:
    """Storage form of a validated element list (camelCase keys)."""
    return [element.model_dump(by_alias=True) for element in elements]


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class FormCreate(BaseModel):
    title: str = Field(default="Untitled form", min_length=1, max_length=255)
    logo_url: Optional[str] = Field(default=None, max_length=1024)
    settings: Dict[str, Any] = Field(default_factory=dict)
    elements: List[FormElement] = Field(default_factory=list)


class FormUpdate(BaseModel):
    """Partial update of a form's content; omitted fields are left unchanged."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    logo_url: Optional[str] = Field(default=None, max_length=1024)
    settings: Optional[Dict[str, Any]] = None
    elements: Optional[List[FormElement]] = None


class FormMembersRemove(BaseModel):
    member_ids: List[uuid.UUID] = Field(min_length=1)


class DisabledStatusUpdate(BaseModel):
    disabled: bool


class DisabledDateUpdate(BaseModel):
    """Schedules (or cancels) automatic closing of a form."""
    disabled_on_specific_date: bool
    disabled_date: Optional[datetime] = None

    @model_validator(mode="after")
    def date_required_when_scheduled(self) -> "DisabledDateUpdate":
        if self.disabled_on_specific_date and self.disabled_date is None:
            raise ValueError("disabled_date is required when disabled_on_specific_date is true")
        return self


class DisabledNotificationUpdate(BaseModel):
    disabled_notification: bool


class FolderAssignment(BaseModel):
    folder_id: uuid.UUID


class TeamAssignment(BaseModel):
    team_id: uuid.UUID


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class FormSummary(BaseModel):
    """Compact form representation for list and folder views."""
    id: uuid.UUID
    title: str
    logo_url: Optional[str] = None
    creator_id: uuid.UUID
    folder_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    deleted_at: Optional[datetime] = None
    disabled: bool
    total_submissions: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FormRead(FormSummary):
    settings: Dict[str, Any] = Field(default_factory=dict)
    elements: List[Dict[str, Any]] = Field(default_factory=list)
    disabled_on_specific_date: bool = False
    disabled_date: Optional[datetime] = None
    disabled_notification: bool = False
    permissions: Dict[str, List[str]] = Field(default_factory=dict)
    is_favourite: bool = False


class FormListItem(FormSummary):
    is_favourite: bool = False
    is_owner: bool = Field(description="Whether the requester holds delete on the form")


class FormListResponse(BaseModel):
    forms: List[FormListItem]
    total_count: int = Field(description="Forms matching the filters, across all pages")
    total_pages: int
    page: int
    page_size: int


class FavouriteToggleResult(BaseModel):
    form_id: uuid.UUID
    status: Literal["added", "removed"]
