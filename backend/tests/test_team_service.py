"""
Formmaker Backend — Team Service Tests
========================================

What we test:
    ✅ Creation makes the creator a full-access member
    ✅ Members may view and edit the team record but not delete it
    ✅ Adding / removing members through the service (checks + events)
    ✅ Leaving a team needs membership only
    ✅ Invitations: accepting joins, others cannot use them, expiry, single use
    ✅ Creator protection and error cases
    ✅ Team deletion removes folders, forms and responses, or nothing on failure
"""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import func, select, update

from formmaker.exceptions import AccessDeniedError, ConflictError, NotFoundError
from formmaker.models.base import utcnow
from formmaker.models.folder import Folder
from formmaker.models.form import Form
from formmaker.models.permission import PermissionGrant
from formmaker.models.response import Response
from formmaker.models.team import Team, TeamInvitation, team_members
from formmaker.permissions import FULL_ACCESS, Capability, GrantOrigin, ResourceType
from formmaker.schemas.folder import FolderCreate
from formmaker.schemas.form import FormCreate
from formmaker.schemas.response import ResponseCreate
from formmaker.schemas.team import TeamCreate, TeamUpdate
from formmaker.services.mail_service import EmailMessage
from formmaker.services.outbox import RealtimeEvent


class TestTeamLifecycle:

    @pytest.mark.asyncio
    async def test_create_team(self, db_session, services, alice):
        """The creator is the only member and holds view, edit and delete."""
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        assert team.creator_id == alice.id
        assert team.permissions == {str(alice.id): ["view", "edit", "delete"]}
        assert await services.membership.member_ids(db_session, team.id) == [alice.id]

    @pytest.mark.asyncio
    async def test_list_my_teams_only_returns_memberships(self, db_session, services, alice, bob):
        await services.teams.create_team(db_session, alice.id, TeamCreate(name="Alice's"))
        await services.teams.create_team(db_session, bob.id, TeamCreate(name="Bob's"))

        teams = await services.teams.list_my_teams(db_session, alice.id)

        assert [t.name for t in teams] == ["Alice's"]

    @pytest.mark.asyncio
    async def test_get_team_requires_view(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        with pytest.raises(AccessDeniedError):
            await services.teams.get_team(db_session, bob.id, team.id)

    @pytest.mark.asyncio
    async def test_member_can_rename_team(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        updated = await services.teams.update_team(db_session, bob.id, team.id, TeamUpdate(name="Brand"))

        assert updated.name == "Brand"

    @pytest.mark.asyncio
    async def test_member_cannot_delete_team(self, db_session, services, alice, bob):
        """Team deletion is reserved for the creator."""
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        with pytest.raises(AccessDeniedError):
            await services.teams.delete_team(db_session, bob.id, team.id)

    @pytest.mark.asyncio
    async def test_unknown_team(self, db_session, services, alice):
        with pytest.raises(NotFoundError):
            await services.teams.get_team(db_session, alice.id, uuid.uuid4())


class TestTeamMembership:

    @pytest.mark.asyncio
    async def test_add_member_propagates_and_emits(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        form = await services.forms.create_form(db_session, alice.id, FormCreate(title="Intake"), team_id=team.id)

        detail = await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        assert {m.id for m in detail.members} == {alice.id, bob.id}
        assert detail.permissions[str(bob.id)] == ["view", "edit"]
        form_perms = await services.store.load(db_session, ResourceType.FORM, form.id)
        assert form_perms[bob.id] == FULL_ACCESS
        events = [n for n in services.outbox.staged(db_session) if isinstance(n, RealtimeEvent)]
        assert events[-1].event == "teamMemberUpdate"
        assert events[-1].room == str(team.id)

    @pytest.mark.asyncio
    async def test_add_existing_member_conflicts(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        with pytest.raises(ConflictError):
            await services.teams.add_member(db_session, alice.id, team.id, bob.email)

    @pytest.mark.asyncio
    async def test_add_unknown_email(self, db_session, services, alice):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        with pytest.raises(NotFoundError):
            await services.teams.add_member(db_session, alice.id, team.id, "nobody@example.com")

    @pytest.mark.asyncio
    async def test_outsider_cannot_add_members(self, db_session, services, alice, bob, carol):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        with pytest.raises(AccessDeniedError):
            await services.teams.add_member(db_session, bob.id, team.id, carol.email)

    @pytest.mark.asyncio
    async def test_remove_member(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        form = await services.forms.create_form(db_session, alice.id, FormCreate(title="Intake"), team_id=team.id)
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        detail = await services.teams.remove_members(db_session, alice.id, team.id, [bob.id])

        assert [m.id for m in detail.members] == [alice.id]
        form_perms = await services.store.load(db_session, ResourceType.FORM, form.id)
        assert bob.id not in form_perms

    @pytest.mark.asyncio
    async def test_member_can_leave(self, db_session, services, alice, bob):
        """Removing yourself succeeds even though you lose view on the team."""
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        detail = await services.teams.remove_members(db_session, bob.id, team.id, [bob.id])

        assert bob.id not in {m.id for m in detail.members}

    @pytest.mark.asyncio
    async def test_member_without_edit_can_leave(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)
        await services.store.set_entry(
            db_session, ResourceType.TEAM, [team.id], bob.id, frozenset({Capability.VIEW}), GrantOrigin.TEAM
        )

        detail = await services.teams.remove_members(db_session, bob.id, team.id, [bob.id])

        assert bob.id not in {m.id for m in detail.members}

    @pytest.mark.asyncio
    async def test_member_without_edit_cannot_remove_others(self, db_session, services, alice, bob, carol):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)
        await services.teams.add_member(db_session, alice.id, team.id, carol.email)
        await services.store.set_entry(
            db_session, ResourceType.TEAM, [team.id], bob.id, frozenset({Capability.VIEW}), GrantOrigin.TEAM
        )

        with pytest.raises(AccessDeniedError):
            await services.teams.remove_members(db_session, bob.id, team.id, [bob.id, carol.id])
        assert await services.membership.is_member(db_session, team.id, carol.id)

    @pytest.mark.asyncio
    async def test_outsider_cannot_leave(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        with pytest.raises(AccessDeniedError):
            await services.teams.remove_members(db_session, bob.id, team.id, [bob.id])

    @pytest.mark.asyncio
    async def test_creator_cannot_be_removed(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        with pytest.raises(AccessDeniedError):
            await services.teams.remove_members(db_session, bob.id, team.id, [alice.id])
        assert await services.membership.is_member(db_session, team.id, alice.id)

    @pytest.mark.asyncio
    async def test_remove_non_member_conflicts(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        with pytest.raises(ConflictError):
            await services.teams.remove_members(db_session, alice.id, team.id, [bob.id])

    @pytest.mark.asyncio
    async def test_invite_stages_email(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))

        invitation = await services.teams.invite_member(db_session, alice.id, team.id, bob.email)

        expected_prefix = f"http://forms.test/teams/{team.id}?view-invitation=true&token="
        assert invitation.invite_url.startswith(expected_prefix)
        assert invitation.expires_at is not None
        emails = [n for n in services.outbox.staged(db_session) if isinstance(n, EmailMessage)]
        assert emails[0].to == bob.email
        assert "Design" in emails[0].subject or "Design" in emails[0].html
        # An invitation alone does not make the invitee a member
        assert not await services.membership.is_member(db_session, team.id, bob.id)


def _token(invitation) -> str:
    return parse_qs(urlparse(invitation.invite_url).query)["token"][0]


class TestTeamInvitations:

    @pytest.mark.asyncio
    async def test_invitee_joins_by_accepting(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        form = await services.forms.create_form(db_session, alice.id, FormCreate(title="Intake"), team_id=team.id)
        invitation = await services.teams.invite_member(db_session, alice.id, team.id, bob.email)

        detail = await services.teams.accept_invitation(db_session, bob.id, team.id, _token(invitation))

        assert {m.id for m in detail.members} == {alice.id, bob.id}
        form_perms = await services.store.load(db_session, ResourceType.FORM, form.id)
        assert form_perms[bob.id] == FULL_ACCESS
        events = [n for n in services.outbox.staged(db_session) if isinstance(n, RealtimeEvent)]
        assert events[-1].data == {"added": [str(bob.id)]}

    @pytest.mark.asyncio
    async def test_invitee_cannot_add_themselves(self, db_session, services, alice, bob):
        """Without edit on the team, accepting is the only way in."""
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.invite_member(db_session, alice.id, team.id, bob.email)

        with pytest.raises(AccessDeniedError):
            await services.teams.add_member(db_session, bob.id, team.id, bob.email)

    @pytest.mark.asyncio
    async def test_someone_elses_invitation_is_rejected(self, db_session, services, alice, bob, carol):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        invitation = await services.teams.invite_member(db_session, alice.id, team.id, bob.email)

        with pytest.raises(AccessDeniedError):
            await services.teams.accept_invitation(db_session, carol.id, team.id, _token(invitation))
        assert not await services.membership.is_member(db_session, team.id, carol.id)

        # The rightful invitee can still use it
        await services.teams.accept_invitation(db_session, bob.id, team.id, _token(invitation))
        assert await services.membership.is_member(db_session, team.id, bob.id)

    @pytest.mark.asyncio
    async def test_invitation_is_single_use(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        invitation = await services.teams.invite_member(db_session, alice.id, team.id, bob.email)
        await services.teams.accept_invitation(db_session, bob.id, team.id, _token(invitation))
        await services.teams.remove_members(db_session, bob.id, team.id, [bob.id])

        with pytest.raises(ConflictError):
            await services.teams.accept_invitation(db_session, bob.id, team.id, _token(invitation))

    @pytest.mark.asyncio
    async def test_expired_invitation(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        invitation = await services.teams.invite_member(db_session, alice.id, team.id, bob.email)
        await db_session.execute(
            update(TeamInvitation)
            .where(TeamInvitation.team_id == team.id)
            .values(expires_at=utcnow() - timedelta(minutes=1))
            .execution_options(synchronize_session="fetch")
        )

        with pytest.raises(ConflictError):
            await services.teams.accept_invitation(db_session, bob.id, team.id, _token(invitation))
        assert not await services.membership.is_member(db_session, team.id, bob.id)

    @pytest.mark.asyncio
    async def test_token_is_bound_to_its_team(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        other = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Ops"))
        invitation = await services.teams.invite_member(db_session, alice.id, team.id, bob.email)

        with pytest.raises(NotFoundError):
            await services.teams.accept_invitation(db_session, bob.id, other.id, _token(invitation))
        with pytest.raises(NotFoundError):
            await services.teams.accept_invitation(db_session, bob.id, team.id, "not-a-token")

    @pytest.mark.asyncio
    async def test_address_without_account_can_accept_after_signup(self, db_session, services, alice, make_user):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        invitation = await services.teams.invite_member(db_session, alice.id, team.id, "Dave@Example.com")
        dave = await make_user("dave")

        await services.teams.accept_invitation(db_session, dave.id, team.id, _token(invitation))

        assert invitation.email == "dave@example.com"
        assert await services.membership.is_member(db_session, team.id, dave.id)

    @pytest.mark.asyncio
    async def test_inviting_a_member_conflicts(self, db_session, services, alice, bob):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)

        with pytest.raises(ConflictError):
            await services.teams.invite_member(db_session, alice.id, team.id, bob.email)


class TestTeamDeletion:

    @pytest.mark.asyncio
    async def test_delete_cascades(self, db_session, services, alice, bob):
        """Deleting a team removes its folders, its forms with their responses, and every grant."""
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)
        folder = await services.folders.create_team_folder(db_session, alice.id, team.id, FolderCreate(name="Q1"))
        form = await services.forms.create_form(
            db_session, alice.id, FormCreate(title="Intake"), team_id=team.id, folder_id=folder.id
        )
        await services.responses.create_response(db_session, form.id, ResponseCreate())

        await services.teams.delete_team(db_session, alice.id, team.id)

        assert await db_session.get(Team, team.id) is None
        for model in (Folder, Form, Response):
            count = (await db_session.execute(select(func.count()).select_from(model))).scalar()
            assert count == 0
        members = (await db_session.execute(select(func.count()).select_from(team_members))).scalar()
        assert members == 0
        grants = (await db_session.execute(select(func.count()).select_from(PermissionGrant))).scalar()
        assert grants == 0

    @pytest.mark.asyncio
    async def test_delete_keeps_personal_forms(self, db_session, services, alice):
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        personal = await services.forms.create_form(db_session, alice.id, FormCreate(title="Mine"))

        await services.teams.delete_team(db_session, alice.id, team.id)

        assert await db_session.get(Form, personal.id) is not None
        perms = await services.store.load(db_session, ResourceType.FORM, personal.id)
        assert perms == {alice.id: FULL_ACCESS}


    @pytest.mark.asyncio
    async def test_failed_delete_keeps_everything(self, db_session, services, alice, bob):
        """If dropping the team's own grants fails, nothing of the team is lost."""
        team = await services.teams.create_team(db_session, alice.id, TeamCreate(name="Design"))
        await services.teams.add_member(db_session, alice.id, team.id, bob.email)
        folder = await services.folders.create_team_folder(db_session, alice.id, team.id, FolderCreate(name="Q1"))
        form = await services.forms.create_form(
            db_session, alice.id, FormCreate(title="Intake"), team_id=team.id, folder_id=folder.id
        )
        await services.responses.create_response(db_session, form.id, ResponseCreate())
        original_purge = services.store.purge

        async def failing_purge(db, resource_type, *args, **kwargs):
            if resource_type is ResourceType.TEAM:
                raise RuntimeError("connection lost")
            return await original_purge(db, resource_type, *args, **kwargs)

        with patch.object(services.store, "purge", AsyncMock(side_effect=failing_purge)):
            with pytest.raises(RuntimeError):
                await services.teams.delete_team(db_session, alice.id, team.id)

        for model, expected in ((Team, 1), (Folder, 1), (Form, 1), (Response, 1), (team_members, 2)):
            count = (await db_session.execute(select(func.count()).select_from(model))).scalar()
            assert count == expected
        total = (await db_session.execute(select(Form.total_submissions).where(Form.id == form.id))).scalar()
        assert total == 1
        form_perms = await services.store.load(db_session, ResourceType.FORM, form.id)
        assert form_perms[bob.id] == FULL_ACCESS
        folder_perms = await services.store.load(db_session, ResourceType.FOLDER, folder.id)
        assert set(folder_perms) == {alice.id, bob.id}
