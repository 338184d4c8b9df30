"""
Formmaker Backend — Permission Model
======================================

What:  Capability tokens, typed permission maps, the three authorization
       predicates and the grant levels used across the system.
Who:   Every service that mutates a team, folder or form.

A permission map maps a user id to the set of capabilities that user holds on
one resource. The predicates are fail-closed: a missing map, or a user with no
entry in it, can do nothing.

Grant levels:
    creator of a resource                    → view, edit, delete
    team member, on every team-owned form
    and folder                               → view, edit, delete
    team member, on the team record itself   → view, edit
    form member invited individually         → view, edit
"""

import enum
import uuid
from typing import Dict, FrozenSet, Iterable, Mapping, Optional


class Capability(str, enum.Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"


class GrantOrigin(str, enum.Enum):
    """How a grant was made. Recorded for auditing; never consulted on revoke."""

    OWNER = "owner"
    TEAM = "team"
    DIRECT = "direct"


class ResourceType(str, enum.Enum):
    TEAM = "team"
    FOLDER = "folder"
    FORM = "form"


PermissionMap = Dict[uuid.UUID, FrozenSet[Capability]]

FULL_ACCESS: FrozenSet[Capability] = frozenset(
    {Capability.VIEW, Capability.EDIT, Capability.DELETE}
)
TEAM_RECORD_ACCESS: FrozenSet[Capability] = frozenset({Capability.VIEW, Capability.EDIT})
INVITED_MEMBER_ACCESS: FrozenSet[Capability] = frozenset({Capability.VIEW, Capability.EDIT})


def _has(
    user_id: uuid.UUID,
    permissions: Optional[Mapping[uuid.UUID, Iterable[Capability]]],
    capability: Capability,
) -> bool:
    if not permissions:
        return False
    granted = permissions.get(user_id)
    if not granted:
        return False
    return capability in granted


def can_view(user_id: uuid.UUID, permissions: Optional[Mapping[uuid.UUID, Iterable[Capability]]]) -> bool:
    return _has(user_id, permissions, Capability.VIEW)


def can_edit(user_id: uuid.UUID, permissions: Optional[Mapping[uuid.UUID, Iterable[Capability]]]) -> bool:
    return _has(user_id, permissions, Capability.EDIT)


def can_delete(user_id: uuid.UUID, permissions: Optional[Mapping[uuid.UUID, Iterable[Capability]]]) -> bool:
    return _has(user_id, permissions, Capability.DELETE)


def uniform_map(user_ids: Iterable[uuid.UUID], capabilities: FrozenSet[Capability]) -> PermissionMap:
    """Builds a map granting the same capabilities to every user in `user_ids`."""
    return {user_id: capabilities for user_id in user_ids}


def serialize(permissions: Mapping[uuid.UUID, FrozenSet[Capability]]) -> Dict[str, list]:
    """JSON-friendly form: string keys, capability lists in a stable order."""
    order = list(Capability)
    return {
        str(user_id): [cap.value for cap in sorted(caps, key=order.index)]
        for user_id, caps in permissions.items()
    }
