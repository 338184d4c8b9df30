"""
Formmaker Backend — Membership Propagation Tests
==================================================

What:  The team membership engine against a real (in-memory) database.

What we test:
    ✅ Adding a member grants the team record and every team form and folder
    ✅ Removing a member strips every team grant, including direct invitations
    ✅ Personal resources of the removed member are untouched
    ✅ A failure half-way through leaves membership and maps unchanged
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from formmaker.models.team import team_members
from formmaker.permissions import (
    FULL_ACCESS,
    TEAM_RECORD_ACCESS,
    Capability,
    GrantOrigin,
    ResourceType,
    can_view,
)
from formmaker.schemas.folder import FolderCreate
from formmaker.schemas.form import FormCreate
from formmaker.schemas.team import TeamCreate


async def _team_with_content(db, services, owner):
    """A team owned by `owner` holding two forms and one folder."""
    team = await services.teams.create_team(db, owner.id, TeamCreate(name="Research"))
    form_a = await services.forms.create_form(db, owner.id, FormCreate(title="A"), team_id=team.id)
    form_b = await services.forms.create_form(db, owner.id, FormCreate(title="B"), team_id=team.id)
    folder = await services.folders.create_team_folder(db, owner.id, team.id, FolderCreate(name="Q3"))
    return team, [form_a.id, form_b.id], folder.id


class TestAddTeamMember:

    @pytest.mark.asyncio
    async def test_grants_team_forms_and_folders(self, db_session, services, alice, bob):
        """T1 has F1, F2 and D1; adding U2 gives U2 full access on each and view+edit on T1."""
        team, form_ids, folder_id = await _team_with_content(db_session, services, alice)

        await services.membership.add_team_member(db_session, team.id, bob.id)

        assert await services.membership.is_member(db_session, team.id, bob.id)
        team_perms = await services.store.load(db_session, ResourceType.TEAM, team.id)
        assert team_perms[bob.id] == TEAM_RECORD_ACCESS
        for form_id in form_ids:
            perms = await services.store.load(db_session, ResourceType.FORM, form_id)
            assert perms[bob.id] == FULL_ACCESS
        folder_perms = await services.store.load(db_session, ResourceType.FOLDER, folder_id)
        assert folder_perms[bob.id] == FULL_ACCESS

    @pytest.mark.asyncio
    async def test_includes_trashed_team_forms(self, db_session, services, alice, bob):
        """A form in the trash is still a team form and follows the member list."""
        team, form_ids, _ = await _team_with_content(db_session, services, alice)
        await services.forms.delete_form(db_session, alice.id, form_ids[0])

        await services.membership.add_team_member(db_session, team.id, bob.id)

        perms = await services.store.load(db_session, ResourceType.FORM, form_ids[0])
        assert perms[bob.id] == FULL_ACCESS

    @pytest.mark.asyncio
    async def test_existing_members_keep_their_grants(self, db_session, services, alice, bob):
        team, form_ids, _ = await _team_with_content(db_session, services, alice)

        await services.membership.add_team_member(db_session, team.id, bob.id)

        perms = await services.store.load(db_session, ResourceType.FORM, form_ids[0])
        assert perms[alice.id] == FULL_ACCESS
        team_perms = await services.store.load(db_session, ResourceType.TEAM, team.id)
        assert team_perms[alice.id] == FULL_ACCESS


class TestRemoveTeamMembers:

    @pytest.mark.asyncio
    async def test_strips_every_team_grant(self, db_session, services, alice, bob):
        """After removal the user can view nothing the team owns."""
        team, form_ids, folder_id = await _team_with_content(db_session, services, alice)
        await services.membership.add_team_member(db_session, team.id, bob.id)

        await services.membership.remove_team_members(db_session, team.id, [bob.id])

        assert not await services.membership.is_member(db_session, team.id, bob.id)
        team_perms = await services.store.load(db_session, ResourceType.TEAM, team.id)
        assert bob.id not in team_perms
        for form_id in form_ids:
            perms = await services.store.load(db_session, ResourceType.FORM, form_id)
            assert not can_view(bob.id, perms)
        folder_perms = await services.store.load(db_session, ResourceType.FOLDER, folder_id)
        assert bob.id not in folder_perms

    @pytest.mark.asyncio
    async def test_direct_invitation_on_team_form_is_revoked(self, db_session, services, alice, bob):
        """Origin is not consulted: a direct grant on a team form goes with membership."""
        team, form_ids, _ = await _team_with_content(db_session, services, alice)
        await services.membership.add_team_member(db_session, team.id, bob.id)
        await services.store.set_entry(
            db_session, ResourceType.FORM, [form_ids[0]], bob.id,
            frozenset({Capability.VIEW}), GrantOrigin.DIRECT,
        )

        await services.membership.remove_team_members(db_session, team.id, [bob.id])

        perms = await services.store.load(db_session, ResourceType.FORM, form_ids[0])
        assert bob.id not in perms

    @pytest.mark.asyncio
    async def test_personal_forms_untouched(self, db_session, services, alice, bob):
        """Leaving a team never affects the member's own forms."""
        team, _, _ = await _team_with_content(db_session, services, alice)
        await services.membership.add_team_member(db_session, team.id, bob.id)
        personal = await services.forms.create_form(db_session, bob.id, FormCreate(title="Mine"))

        await services.membership.remove_team_members(db_session, team.id, [bob.id])

        perms = await services.store.load(db_session, ResourceType.FORM, personal.id)
        assert perms[bob.id] == FULL_ACCESS

    @pytest.mark.asyncio
    async def test_other_members_keep_access(self, db_session, services, alice, bob, carol):
        team, form_ids, _ = await _team_with_content(db_session, services, alice)
        await services.membership.add_team_member(db_session, team.id, bob.id)
        await services.membership.add_team_member(db_session, team.id, carol.id)

        await services.membership.remove_team_members(db_session, team.id, [bob.id])

        perms = await services.store.load(db_session, ResourceType.FORM, form_ids[1])
        assert set(perms) == {alice.id, carol.id}

    @pytest.mark.asyncio
    async def test_empty_list_is_a_no_op(self, db_session, services, alice):
        team, _, _ = await _team_with_content(db_session, services, alice)
        await services.membership.remove_team_members(db_session, team.id, [])
        assert await services.membership.member_ids(db_session, team.id) == [alice.id]


class TestAtomicity:

    @pytest.mark.asyncio
    async def test_failed_add_leaves_nothing_behind(self, db_session, services, alice, bob):
        """If granting folders fails, membership and form grants are rolled back too."""
        team, form_ids, folder_id = await _team_with_content(db_session, services, alice)
        original_set_entry = services.store.set_entry

        async def failing_set_entry(db, resource_type, *args, **kwargs):
            if resource_type is ResourceType.FOLDER:
                raise RuntimeError("disk full")
            return await original_set_entry(db, resource_type, *args, **kwargs)

        with patch.object(services.store, "set_entry", AsyncMock(side_effect=failing_set_entry)):
            with pytest.raises(RuntimeError):
                await services.membership.add_team_member(db_session, team.id, bob.id)

        assert not await services.membership.is_member(db_session, team.id, bob.id)
        team_perms = await services.store.load(db_session, ResourceType.TEAM, team.id)
        assert bob.id not in team_perms
        for form_id in form_ids:
            perms = await services.store.load(db_session, ResourceType.FORM, form_id)
            assert bob.id not in perms

    @pytest.mark.asyncio
    async def test_failed_remove_keeps_member_whole(self, db_session, services, alice, bob):
        """If revoking on folders fails, the member keeps the team and every form."""
        team, form_ids, folder_id = await _team_with_content(db_session, services, alice)
        await services.membership.add_team_member(db_session, team.id, bob.id)
        original_revoke = services.store.revoke

        async def failing_revoke(db, resource_type, *args, **kwargs):
            if resource_type is ResourceType.FOLDER:
                raise RuntimeError("connection lost")
            return await original_revoke(db, resource_type, *args, **kwargs)

        with patch.object(services.store, "revoke", AsyncMock(side_effect=failing_revoke)):
            with pytest.raises(RuntimeError):
                await services.membership.remove_team_members(db_session, team.id, [bob.id])

        assert await services.membership.is_member(db_session, team.id, bob.id)
        for form_id in form_ids:
            perms = await services.store.load(db_session, ResourceType.FORM, form_id)
            assert perms[bob.id] == FULL_ACCESS
        folder_perms = await services.store.load(db_session, ResourceType.FOLDER, folder_id)
        assert folder_perms[bob.id] == FULL_ACCESS

    @pytest.mark.asyncio
    async def test_membership_rows_match_member_ids(self, db_session, services, alice, bob):
        team, _, _ = await _team_with_content(db_session, services, alice)
        await services.membership.add_team_member(db_session, team.id, bob.id)
        rows = await db_session.execute(
            select(team_members.c.user_id).where(team_members.c.team_id == team.id)
        )
        assert set(rows.scalars().all()) == {alice.id, bob.id}
