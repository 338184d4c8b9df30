"""ORM models. Importing this package registers every table on Base.metadata."""

from formmaker.models.folder import Folder
from formmaker.models.form import Form, form_favourites
from formmaker.models.permission import PermissionGrant
from formmaker.models.response import Response
from formmaker.models.team import Team, TeamInvitation, team_members
from formmaker.models.user import User

__all__ = [
    "Folder",
    "Form",
    "PermissionGrant",
    "Response",
    "Team",
    "TeamInvitation",
    "User",
    "form_favourites",
    "team_members",
]
