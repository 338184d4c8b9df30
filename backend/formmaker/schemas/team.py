"""
Formmaker Backend — Team Schemas
==================================

What:  Request and response bodies for the /api/teams router.

Permission maps are serialized as {"<user id>": ["view", "edit", ...]}.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from formmaker.schemas.user import UserRead


class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    logo_url: Optional[str] = Field(default=None, max_length=1024)


class TeamUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    logo_url: Optional[str] = Field(default=None, max_length=1024)


class TeamRead(BaseModel):
    id: uuid.UUID
    name: str
    logo_url: Optional[str] = None
    creator_id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    permissions: Dict[str, List[str]] = Field(default_factory=dict)


class TeamDetail(TeamRead):
    members: List[UserRead] = Field(default_factory=list)


class TeamMembersRemove(BaseModel):
    member_ids: List[uuid.UUID] = Field(min_length=1)


class InvitationRead(BaseModel):
    """
    Result of an invitation.

    invite_url points at the frontend page where the invitee accepts; it is
    also what the invitation email links to.
    """
    email: str
    invite_url: str
    # Set for team invitations, which expire; form invitations do not
    expires_at: Optional[datetime] = None


class InvitationAccept(BaseModel):
    token: str = Field(min_length=1, max_length=64)
