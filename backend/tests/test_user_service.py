"""
Formmaker Backend — User Service Tests
========================================

What we test:
    ✅ Profile updates, including organization details and email changes
    ✅ Password change checks the current password
    ✅ Account deletion: personal content goes, team content passes to the
       team creator, every grant and membership is revoked
    ✅ A failed account deletion leaves the account whole
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from formmaker.exceptions import AccessDeniedError, ConflictError, NotFoundError
from formmaker.models.folder import Folder
from formmaker.models.form import Form, form_favourites
from formmaker.models.permission import PermissionGrant
from formmaker.models.response import Response
from formmaker.models.team import team_members
from formmaker.models.user import User
from formmaker.permissions import FULL_ACCESS, ResourceType
from formmaker.schemas.folder import FolderCreate
from formmaker.schemas.form import FormCreate
from formmaker.schemas.response import ResponseCreate
from formmaker.schemas.team import TeamCreate
from formmaker.schemas.user import PasswordChange, UserUpdate
from formmaker.services.user_service import verify_password


async def _count(db, model, *criteria) -> int:
    return (await db.execute(select(func.count()).select_from(model).where(*criteria))).scalar()


class TestProfile:

    @pytest.mark.asyncio
    async def test_update_profile(self, db_session, services, alice):
        updated = await services.users.update_user(
            db_session,
            alice.id,
            UserUpdate(username="  Alice L. ", organization_name="Acme", organization_logo="https://cdn.test/acme.png"),
        )

        assert updated.username == "Alice L."
        assert updated.organization_name == "Acme"
        assert updated.organization_logo == "https://cdn.test/acme.png"
        assert (await services.users.get_user(db_session, alice.id)).organization_name == "Acme"

    @pytest.mark.asyncio
    async def test_email_change_is_normalized(self, db_session, services, alice):
        updated = await services.users.update_user(db_session, alice.id, UserUpdate(email="Alice.New@Example.com"))

        assert updated.email == "alice.new@example.com"
        assert (await services.users.get_by_email(db_session, "ALICE.NEW@example.com")).id == alice.id

    @pytest.mark.asyncio
    async def test_email_taken_by_another_account(self, db_session, services, alice, bob):
        with pytest.raises(ConflictError):
            await services.users.update_user(db_session, alice.id, UserUpdate(email="BOB@example.com"))

        # Re-submitting your own address is not a clash
        same = await services.users.update_user(db_session, alice.id, UserUpdate(email=alice.email))
        assert same.email == alice.email

    @pytest.mark.asyncio
    async def test_null_clears_optional_fields_only(self, db_session, services, alice):
        await services.users.update_user(db_session, alice.id, UserUpdate(avatar_url="https://cdn.test/a.png"))

        updated = await services.users.update_user(db_session, alice.id, UserUpdate(avatar_url=None, username=None))

        assert updated.avatar_url is None
        assert updated.username == "alice"

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, services):
        with pytest.raises(NotFoundError):
            await services.users.update_user(db_session, uuid.uuid4(), UserUpdate(username="ghost"))


class TestPassword:

    @pytest.mark.asyncio
    async def test_change_password(self, db_session, services, alice):
        await services.users.change_password(
            db_session, alice.id, PasswordChange(current_password="correct-horse", new_password="battery-staple")
        )

        user = await db_session.get(User, alice.id)
        assert verify_password("battery-staple", user.password_hash)
        assert not verify_password("correct-horse", user.password_hash)
        assert user.password_changed_at is not None

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, db_session, services, alice):
        with pytest.raises(AccessDeniedError):
            await services.users.change_password(
                db_session, alice.id, PasswordChange(current_password="wrong-horse", new_password="battery-staple")
            )

        user = await db_session.get(User, alice.id)
        assert verify_password("correct-horse", user.password_hash)
        assert user.password_changed_at is None


class TestAccountDeletion:

    @pytest.mark.asyncio
    async def test_only_your_own_account(self, db_session, services, alice, bob):
        with pytest.raises(AccessDeniedError):
            await services.users.delete_user(db_session, bob.id, alice.id)

        assert await _count(db_session, User, User.id == alice.id) == 1

    @pytest.mark.asyncio
    async def test_team_creator_must_delete_teams_first(self, db_session, services, alice):
        await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        with pytest.raises(ConflictError):
            await services.users.delete_user(db_session, alice.id, alice.id)

    @pytest.mark.asyncio
    async def test_personal_content_goes_team_content_stays(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)
        team_folder = await services.folders.create_team_folder(db_session, bob.id, team.id, FolderCreate(name="Q1"))
        team_form = await services.forms.create_form(
            db_session, bob.id, FormCreate(title="Roster"), team_id=team.id, folder_id=team_folder.id
        )
        folder = await services.folders.create_personal_folder(db_session, bob.id, FolderCreate(name="Mine"))
        personal = await services.forms.create_form(db_session, bob.id, FormCreate(title="Diary"), folder_id=folder.id)
        await services.responses.create_response(db_session, personal.id, ResponseCreate())
        alices = await services.forms.create_form(db_session, alice.id, FormCreate(title="Alice's"))
        await services.placement.toggle_favourite(db_session, bob.id, team_form.id)

        await services.users.delete_user(db_session, bob.id, bob.id)

        assert await _count(db_session, User, User.id == bob.id) == 0
        assert await _count(db_session, Form, Form.id == personal.id) == 0
        assert await _count(db_session, Folder, Folder.id == folder.id) == 0
        assert await _count(db_session, Response) == 0
        creators = await db_session.execute(
            select(Form.creator_id).where(Form.id.in_([team_form.id, alices.id]))
        )
        assert set(creators.scalars().all()) == {alice.id}
        folder_creator = await db_session.execute(select(Folder.creator_id).where(Folder.id == team_folder.id))
        assert folder_creator.scalar() == alice.id
        assert await _count(db_session, PermissionGrant, PermissionGrant.user_id == bob.id) == 0
        assert await _count(db_session, team_members, team_members.c.user_id == bob.id) == 0
        assert await _count(db_session, form_favourites, form_favourites.c.user_id == bob.id) == 0
        team_form_perms = await services.store.load(db_session, ResourceType.FORM, team_form.id)
        assert team_form_perms == {alice.id: FULL_ACCESS}

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_account(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)
        personal = await services.forms.create_form(db_session, bob.id, FormCreate(title="Diary"))
        await services.responses.create_response(db_session, personal.id, ResponseCreate())

        with patch.object(services.store, "revoke", AsyncMock(side_effect=RuntimeError("connection lost"))):
            with pytest.raises(RuntimeError):
                await services.users.delete_user(db_session, bob.id, bob.id)

        assert await _count(db_session, User, User.id == bob.id) == 1
        assert await _count(db_session, Form, Form.id == personal.id) == 1
        assert await _count(db_session, Response, Response.form_id == personal.id) == 1
        assert await services.membership.is_member(db_session, team.id, bob.id)
        team_perms = await services.store.load(db_session, ResourceType.TEAM, team.id)
        assert bob.id in team_perms
