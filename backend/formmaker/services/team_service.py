"""
Formmaker Backend — Team Service
==================================

What:  Team lifecycle (create, read, update, delete) and the membership
       operations exposed to users (invite, accept, add, remove, leave).
How:   Checks the caller's capability on the team, then delegates membership
       changes to MembershipService. Invitation emails and real-time
       `teamMemberUpdate` events are staged on the outbox and go out after
       commit.

Who may do what:
    view team details              view
    rename / change logo           edit
    invite, add, remove members    edit
    leave (remove only yourself)   membership
    accept an invitation           the invited email address
    delete team                    creator only

Delete Cascade (one transaction, in this order):
    responses of team forms → favourites, grants and rows of team forms
    → grants and rows of team folders → invitations, members, grants and
    row of the team
"""

import hashlib
import logging
import secrets
import uuid
from datetime import timedelta
from typing import List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.config import settings
from formmaker.database import atomic
from formmaker.exceptions import AccessDeniedError, ConflictError, NotFoundError
from formmaker.models.base import as_utc, utcnow
from formmaker.models.team import Team, TeamInvitation, team_members
from formmaker.models.user import User
from formmaker.permissions import Capability, FULL_ACCESS, GrantOrigin, PermissionMap, ResourceType, serialize
from formmaker.schemas.team import InvitationRead, TeamCreate, TeamDetail, TeamRead, TeamUpdate
from formmaker.schemas.user import UserRead
from formmaker.services.base import database_errors, ensure_capability, ensure_creator, get_or_404
from formmaker.services.cascade import purge_folders, purge_forms
from formmaker.services.mail_service import team_invitation_email
from formmaker.services.membership_service import MembershipService
from formmaker.services.outbox import Outbox, RealtimeEvent
from formmaker.services.permission_store import PermissionStore
from formmaker.services.user_service import UserService

logger = logging.getLogger(__name__)

TEAM_MEMBER_UPDATE = "teamMemberUpdate"


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def team_read(team: Team, permissions: PermissionMap) -> TeamRead:
    return TeamRead(
        id=team.id,
        name=team.name,
        logo_url=team.logo_url,
        creator_id=team.creator_id,
        created_at=team.created_at,
        updated_at=team.updated_at,
        permissions=serialize(permissions),
    )


class TeamService:

    def __init__(
        self,
        store: PermissionStore,
        membership: MembershipService,
        users: UserService,
        outbox: Outbox,
    ):
        self.store = store
        self.membership = membership
        self.users = users
        self.outbox = outbox

    async def _load(self, db: AsyncSession, team_id: uuid.UUID):
        team = await get_or_404(db, Team, team_id, "team")
        permissions = await self.store.load(db, ResourceType.TEAM, team_id)
        return team, permissions

    async def list_my_teams(self, db: AsyncSession, actor_id: uuid.UUID) -> List[TeamRead]:
        with database_errors("list teams", user_id=actor_id):
            result = await db.execute(
                select(Team)
                .join(team_members, team_members.c.team_id == Team.id)
                .where(team_members.c.user_id == actor_id)
                .order_by(Team.created_at.desc())
            )
            teams = list(result.scalars().all())
            maps = await self.store.load_many(db, ResourceType.TEAM, [t.id for t in teams])
            return [team_read(team, maps.get(team.id, {})) for team in teams]

    async def create_team(self, db: AsyncSession, actor_id: uuid.UUID, data: TeamCreate) -> TeamRead:
        """The creator becomes the first member and holds every capability."""
        with database_errors("create team"):
            await get_or_404(db, User, actor_id, "user")
            async with atomic(db):
                team = Team(name=data.name, logo_url=data.logo_url, creator_id=actor_id)
                db.add(team)
                await db.flush()
                await db.execute(team_members.insert().values(team_id=team.id, user_id=actor_id))
                await self.store.replace(
                    db, ResourceType.TEAM, team.id, {actor_id: FULL_ACCESS}, GrantOrigin.OWNER
                )
            logger.info("Team %s created by %s", team.id, actor_id)
            return team_read(team, {actor_id: FULL_ACCESS})

    async def _detail(self, db: AsyncSession, team: Team) -> TeamDetail:
        permissions = await self.store.load(db, ResourceType.TEAM, team.id)
        result = await db.execute(
            select(User)
            .join(team_members, team_members.c.user_id == User.id)
            .where(team_members.c.team_id == team.id)
            .order_by(User.username)
        )
        members = [UserRead.model_validate(user) for user in result.scalars().all()]
        return TeamDetail(**team_read(team, permissions).model_dump(), members=members)

    async def get_team(self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID) -> TeamDetail:
        with database_errors("retrieve team", team_id=team_id):
            team, permissions = await self._load(db, team_id)
            ensure_capability(actor_id, permissions, Capability.VIEW, "team", team_id)
            return await self._detail(db, team)

    async def update_team(
        self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID, data: TeamUpdate
    ) -> TeamRead:
        with database_errors("update team", team_id=team_id):
            team, permissions = await self._load(db, team_id)
            ensure_capability(actor_id, permissions, Capability.EDIT, "team", team_id)
            changes = data.model_dump(exclude_unset=True)
            for key, value in changes.items():
                if value is not None:
                    setattr(team, key, value)
            await db.flush()
            logger.info("Team %s updated by %s: %s", team_id, actor_id, sorted(changes))
            return team_read(team, permissions)

    async def delete_team(self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID) -> None:
        with database_errors("delete team", team_id=team_id):
            team = await get_or_404(db, Team, team_id, "team")
            ensure_creator(actor_id, team.creator_id, "team", team_id)
            form_ids, folder_ids = await self.membership.owned_resource_ids(db, team_id)
            async with atomic(db):
                await purge_forms(db, self.store, form_ids)
                await purge_folders(db, self.store, folder_ids)
                await db.execute(delete(TeamInvitation).where(TeamInvitation.team_id == team_id))
                await db.execute(delete(team_members).where(team_members.c.team_id == team_id))
                await self.store.purge(db, ResourceType.TEAM, [team_id])
                await db.delete(team)
            logger.info(
                "Team %s deleted by %s (%d forms, %d folders)",
                team_id, actor_id, len(form_ids), len(folder_ids),
            )

    # ── Membership ────────────────────────────────────────────────────────

    async def invite_member(
        self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID, email: str
    ) -> InvitationRead:
        """
        Records a single-use invitation and emails its link.

        The address need not belong to an account yet; whoever signs in with
        it can accept until the invitation expires.
        """
        with database_errors("invite team member", team_id=team_id):
            team, permissions = await self._load(db, team_id)
            ensure_capability(actor_id, permissions, Capability.EDIT, "team", team_id)
            email = email.lower()
            existing = await db.execute(select(User.id).where(User.email == email))
            invitee_id = existing.scalar_one_or_none()
            if invitee_id is not None and await self.membership.is_member(db, team_id, invitee_id):
                raise ConflictError(
                    message=f"{email} is already a member of this team",
                    context={"team_id": str(team_id), "user_id": str(invitee_id)},
                )
            inviter = await get_or_404(db, User, actor_id, "user")
            token = secrets.token_urlsafe(32)
            invitation = TeamInvitation(
                team_id=team_id,
                email=email,
                token_hash=_digest(token),
                inviter_id=actor_id,
                expires_at=utcnow() + timedelta(hours=settings.invitation_ttl_hours),
            )
            db.add(invitation)
            await db.flush()
            invite_url = (
                f"{settings.frontend_url}/teams/{team_id}?view-invitation=true&token={token}"
            )
            self.outbox.stage(db, team_invitation_email(email, inviter.username, team.name, invite_url))
            logger.info("User %s invited %s to team %s", actor_id, email, team_id)
            return InvitationRead(email=email, invite_url=invite_url, expires_at=invitation.expires_at)

    async def accept_invitation(
        self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID, token: str
    ) -> TeamDetail:
        """
        Joins the caller to the team named by a pending invitation.

        Raises:
            NotFoundError: no invitation with this token for this team
            AccessDeniedError: the invitation was sent to another address
            ConflictError: already accepted, expired, or the caller is already a member
        """
        with database_errors("accept team invitation", team_id=team_id):
            team = await get_or_404(db, Team, team_id, "team")
            user = await get_or_404(db, User, actor_id, "user")
            result = await db.execute(
                select(TeamInvitation).where(
                    TeamInvitation.token_hash == _digest(token), TeamInvitation.team_id == team_id
                )
            )
            invitation = result.scalar_one_or_none()
            if invitation is None:
                raise NotFoundError(resource="invitation", context={"team_id": str(team_id)})
            if invitation.email != user.email:
                logger.warning(
                    "User %s tried to accept an invitation to team %s sent to another address",
                    actor_id, team_id,
                )
                raise AccessDeniedError(
                    message="This invitation was sent to a different email address",
                    required="invitee",
                    context={"team_id": str(team_id)},
                )
            if invitation.accepted_at is not None:
                raise ConflictError(
                    message="This invitation has already been used",
                    context={"team_id": str(team_id)},
                )
            if as_utc(invitation.expires_at) <= utcnow():
                raise ConflictError(
                    message="This invitation has expired",
                    context={"team_id": str(team_id)},
                )
            if await self.membership.is_member(db, team_id, actor_id):
                raise ConflictError(
                    message="You are already a member of this team",
                    context={"team_id": str(team_id), "user_id": str(actor_id)},
                )
            async with atomic(db):
                await self.membership.add_team_member(db, team_id, actor_id)
                invitation.accepted_at = utcnow()
                await db.flush()
            self.outbox.stage(db, RealtimeEvent(str(team_id), TEAM_MEMBER_UPDATE, {"added": [str(actor_id)]}))
            logger.info("User %s accepted an invitation to team %s", actor_id, team_id)
            return await self._detail(db, team)

    async def add_member(
        self, db: AsyncSession, actor_id: uuid.UUID, team_id: uuid.UUID, email: str
    ) -> TeamDetail:
        with database_errors("add team member", team_id=team_id):
            team, permissions = await self._load(db, team_id)
            ensure_capability(actor_id, permissions, Capability.EDIT, "team", team_id)
            member = await self.users.get_by_email(db, email)
            if await self.membership.is_member(db, team_id, member.id):
                raise ConflictError(
                    message=f"{member.email} is already a member of this team",
                    context={"team_id": str(team_id), "user_id": str(member.id)},
                )
            await self.membership.add_team_member(db, team_id, member.id)
            self.outbox.stage(db, RealtimeEvent(str(team_id), TEAM_MEMBER_UPDATE, {"added": [str(member.id)]}))
            return await self._detail(db, team)

    async def remove_members(
        self,
        db: AsyncSession,
        actor_id: uuid.UUID,
        team_id: uuid.UUID,
        member_ids: Sequence[uuid.UUID],
    ) -> TeamDetail:
        """
        Removes members and revokes their access to the team and everything it owns.

        A member who removes only themselves (leaving) needs no capability
        beyond membership; any other removal needs edit on the team.

        Raises:
            AccessDeniedError: caller lacks edit, or the creator is in `member_ids`
            NotFoundError: a listed user does not exist
            ConflictError: a listed user is not a member of the team
        """
        with database_errors("remove team members", team_id=team_id):
            team, permissions = await self._load(db, team_id)
            current = set(await self.membership.member_ids(db, team_id))
            leaving = set(member_ids) == {actor_id} and actor_id in current
            if not leaving:
                ensure_capability(actor_id, permissions, Capability.EDIT, "team", team_id)
            if team.creator_id in member_ids:
                logger.warning("User %s tried to remove the creator of team %s", actor_id, team_id)
                raise AccessDeniedError(
                    message="The team creator cannot be removed from the team",
                    required="creator",
                    context={"team_id": str(team_id)},
                )
            for member_id in member_ids:
                if await db.get(User, member_id) is None:
                    raise NotFoundError(resource="user", resource_id=str(member_id))
                if member_id not in current:
                    raise ConflictError(
                        message="User is not a member of this team",
                        context={"team_id": str(team_id), "user_id": str(member_id)},
                    )
            await self.membership.remove_team_members(db, team_id, member_ids)
            self.outbox.stage(
                db,
                RealtimeEvent(str(team_id), TEAM_MEMBER_UPDATE, {"removed": [str(m) for m in member_ids]}),
            )
            return await self._detail(db, team)
