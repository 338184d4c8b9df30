"""
Formmaker Backend — Folder Schemas
====================================
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from formmaker.schemas.form import FormSummary


class FolderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    color: Optional[str] = Field(default=None, max_length=32)


class FolderUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    color: Optional[str] = Field(default=None, max_length=32)


class FolderRead(BaseModel):
    id: uuid.UUID
    name: str
    color: Optional[str] = None
    creator_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    permissions: Dict[str, List[str]] = Field(default_factory=dict)


class FolderDetail(FolderRead):
    """A folder together with the live (not trashed) forms inside it."""
    forms: List[FormSummary] = Field(default_factory=list)
