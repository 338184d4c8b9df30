"""
Formmaker Backend — User Service
==================================

What:  Signup, user lookup, profile and password changes, account deletion
       and the "my favourite forms" listing.
How:   Emails are normalized to lower case before storage and lookup.
       Passwords are hashed with passlib; the plain text never reaches the
       database or the logs.
"""

import logging
import uuid
from typing import List

from passlib.context import CryptContext
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.database import atomic
from formmaker.exceptions import AccessDeniedError, ConflictError, NotFoundError
from formmaker.models.base import utcnow
from formmaker.models.folder import Folder
from formmaker.models.form import Form, form_favourites
from formmaker.models.team import Team, TeamInvitation, team_members
from formmaker.models.user import User
from formmaker.permissions import Capability, ResourceType, can_view
from formmaker.schemas.form import FormSummary
from formmaker.schemas.user import PasswordChange, UserCreate, UserRead, UserUpdate
from formmaker.services.base import database_errors, get_or_404
from formmaker.services.cascade import purge_folders, purge_forms
from formmaker.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_REQUIRED_PROFILE_FIELDS = {"email", "username"}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


class UserService:

    def __init__(self, store: PermissionStore):
        self.store = store

    async def create_user(self, db: AsyncSession, data: UserCreate) -> UserRead:
        email = data.email.lower()
        with database_errors("create user"):
            existing = await db.execute(select(User.id).where(User.email == email))
            if existing.first() is not None:
                raise ConflictError(
                    message="An account with this email already exists",
                    context={"email": email},
                )
            user = User(
                email=email,
                username=data.username,
                password_hash=hash_password(data.password),
                avatar_url=data.avatar_url,
            )
            db.add(user)
            await db.flush()
            logger.info("User %s signed up", user.id)
            return UserRead.model_validate(user)

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> UserRead:
        with database_errors("retrieve user", user_id=user_id):
            user = await get_or_404(db, User, user_id, "user")
            return UserRead.model_validate(user)

    async def get_by_email(self, db: AsyncSession, email: str) -> User:
        result = await db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(resource="user", context={"email": email.lower()})
        return user

    async def update_user(self, db: AsyncSession, actor_id: uuid.UUID, data: UserUpdate) -> UserRead:
        """
        Updates the caller's profile. Email and username cannot be cleared;
        the avatar and organization details can be set to null.

        Raises:
            ConflictError: the new email belongs to another account
        """
        with database_errors("update user", user_id=actor_id):
            user = await get_or_404(db, User, actor_id, "user")
            changes = data.model_dump(exclude_unset=True)
            if changes.get("email") is not None:
                email = changes["email"].lower()
                taken = await db.execute(select(User.id).where(User.email == email, User.id != actor_id))
                if taken.first() is not None:
                    raise ConflictError(
                        message="An account with this email already exists",
                        context={"email": email},
                    )
                changes["email"] = email
            for key, value in changes.items():
                if value is None and key in _REQUIRED_PROFILE_FIELDS:
                    continue
                setattr(user, key, value)
            await db.flush()
            logger.info("User %s updated profile: %s", actor_id, sorted(changes))
            return UserRead.model_validate(user)

    async def change_password(self, db: AsyncSession, actor_id: uuid.UUID, data: PasswordChange) -> None:
        with database_errors("change password", user_id=actor_id):
            user = await get_or_404(db, User, actor_id, "user")
            if not verify_password(data.current_password, user.password_hash):
                logger.warning("User %s gave a wrong current password", actor_id)
                raise AccessDeniedError(message="Current password is incorrect", required="password")
            user.password_hash = hash_password(data.new_password)
            user.password_changed_at = utcnow()
            await db.flush()
            logger.info("User %s changed password", actor_id)

    async def delete_user(self, db: AsyncSession, actor_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """
        Deletes the caller's own account.

        Personal forms and folders go with the account. Forms and folders the
        user created inside a team stay with the team and pass to the team's
        creator. Every grant, membership and favourite of the user is removed.

        Raises:
            AccessDeniedError: `user_id` is not the caller
            ConflictError: the user still created one or more teams
        """
        with database_errors("delete user", user_id=user_id):
            if actor_id != user_id:
                logger.warning("User %s tried to delete account %s", actor_id, user_id)
                raise AccessDeniedError(
                    message="You can only delete your own account",
                    required="self",
                    context={"user_id": str(user_id)},
                )
            user = await get_or_404(db, User, user_id, "user")
            teams = await db.execute(select(Team.id).where(Team.creator_id == user_id))
            if teams.first() is not None:
                raise ConflictError(
                    message="Delete the teams you created before deleting your account",
                    context={"user_id": str(user_id)},
                )
            folder_result = await db.execute(
                select(Folder.id).where(Folder.creator_id == user_id, Folder.team_id.is_(None))
            )
            folder_ids = list(folder_result.scalars().all())
            form_result = await db.execute(
                select(Form.id).where(
                    Form.team_id.is_(None),
                    or_(Form.creator_id == user_id, Form.folder_id.in_(folder_ids)),
                )
            )
            form_ids = list(form_result.scalars().all())

            async with atomic(db):
                await purge_forms(db, self.store, form_ids)
                await purge_folders(db, self.store, folder_ids)
                for model in (Form, Folder):
                    await db.execute(
                        update(model)
                        .where(model.creator_id == user_id, model.team_id.is_not(None))
                        .values(
                            creator_id=select(Team.creator_id)
                            .where(Team.id == model.team_id)
                            .scalar_subquery()
                        )
                        .execution_options(synchronize_session=False)
                    )
                for resource_type in ResourceType:
                    resource_ids = await self.store.resources_of(db, resource_type, user_id, Capability.VIEW)
                    await self.store.revoke(db, resource_type, resource_ids, [user_id])
                await db.execute(delete(team_members).where(team_members.c.user_id == user_id))
                await db.execute(delete(form_favourites).where(form_favourites.c.user_id == user_id))
                await db.execute(
                    update(TeamInvitation)
                    .where(TeamInvitation.inviter_id == user_id)
                    .values(inviter_id=None)
                    .execution_options(synchronize_session=False)
                )
                await db.delete(user)
            logger.info(
                "User %s deleted their account (%d forms, %d folders)",
                user_id, len(form_ids), len(folder_ids),
            )

    async def list_favourite_forms(self, db: AsyncSession, user_id: uuid.UUID) -> List[FormSummary]:
        """Live favourites the user can still view, most recently updated first."""
        with database_errors("list favourite forms", user_id=user_id):
            result = await db.execute(
                select(Form)
                .join(form_favourites, form_favourites.c.form_id == Form.id)
                .where(form_favourites.c.user_id == user_id, Form.deleted_at.is_(None))
                .order_by(Form.updated_at.desc())
            )
            forms = list(result.scalars().all())
            maps = await self.store.load_many(db, ResourceType.FORM, [f.id for f in forms])
            return [
                FormSummary.model_validate(form)
                for form in forms
                if can_view(user_id, maps.get(form.id))
            ]
