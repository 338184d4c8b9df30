"""
Formmaker Backend — Permission Model Tests
============================================

What we test:
    ✅ Predicates return exactly what the map grants
    ✅ Fail-closed behaviour for missing maps and missing users
    ✅ Grant levels and serialization order
"""

from uuid import uuid4

from formmaker.permissions import (
    FULL_ACCESS,
    INVITED_MEMBER_ACCESS,
    TEAM_RECORD_ACCESS,
    Capability,
    can_delete,
    can_edit,
    can_view,
    serialize,
    uniform_map,
)


class TestPredicates:

    def test_full_access_allows_everything(self):
        """A user holding every capability passes all three checks."""
        user = uuid4()
        perms = {user: FULL_ACCESS}
        assert can_view(user, perms)
        assert can_edit(user, perms)
        assert can_delete(user, perms)

    def test_view_only(self):
        """Holding only view must not imply edit or delete."""
        user = uuid4()
        perms = {user: frozenset({Capability.VIEW})}
        assert can_view(user, perms)
        assert not can_edit(user, perms)
        assert not can_delete(user, perms)

    def test_capabilities_are_independent(self):
        """Edit without view is stored and reported literally."""
        user = uuid4()
        perms = {user: frozenset({Capability.EDIT})}
        assert not can_view(user, perms)
        assert can_edit(user, perms)

    def test_user_without_entry_is_denied(self):
        perms = {uuid4(): FULL_ACCESS}
        stranger = uuid4()
        assert not can_view(stranger, perms)
        assert not can_edit(stranger, perms)
        assert not can_delete(stranger, perms)

    def test_missing_map_is_denied(self):
        """None and empty maps deny every capability."""
        user = uuid4()
        for perms in (None, {}):
            assert not can_view(user, perms)
            assert not can_edit(user, perms)
            assert not can_delete(user, perms)

    def test_empty_capability_set_is_denied(self):
        user = uuid4()
        assert not can_view(user, {user: frozenset()})


class TestGrantLevels:

    def test_team_record_access_has_no_delete(self):
        """Members can manage the team record but only the creator deletes it."""
        assert TEAM_RECORD_ACCESS == {Capability.VIEW, Capability.EDIT}

    def test_invited_member_access(self):
        assert INVITED_MEMBER_ACCESS == {Capability.VIEW, Capability.EDIT}

    def test_uniform_map(self):
        users = [uuid4(), uuid4()]
        perms = uniform_map(users, FULL_ACCESS)
        assert set(perms) == set(users)
        assert all(caps == FULL_ACCESS for caps in perms.values())

    def test_serialize_uses_stable_order(self):
        """Serialized capabilities are string-keyed and ordered view, edit, delete."""
        user = uuid4()
        out = serialize({user: frozenset({Capability.DELETE, Capability.VIEW, Capability.EDIT})})
        assert out == {str(user): ["view", "edit", "delete"]}
