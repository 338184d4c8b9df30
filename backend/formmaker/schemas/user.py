"""
Formmaker Backend — User Schemas
==================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserCreate(BaseModel):
    """Signup payload. The password is hashed before it reaches the database."""
    email: EmailStr
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8, max_length=128)
    avatar_url: Optional[str] = Field(default=None, max_length=1024)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Username cannot be blank")
        return stripped


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    username: str
    avatar_url: Optional[str] = None
    organization_name: Optional[str] = None
    organization_logo: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    """Partial profile update; omitted fields are left unchanged."""
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=1024)
    organization_name: Optional[str] = Field(default=None, max_length=255)
    organization_logo: Optional[str] = Field(default=None, max_length=1024)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        stripped = v.strip()
        if not stripped:
            raise ValueError("Username cannot be blank")
        return stripped


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


class MemberEmail(BaseModel):
    """Identifies a user to invite or add by email address."""
    email: EmailStr
