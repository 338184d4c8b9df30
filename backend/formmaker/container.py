"""
Formmaker Backend — Service Container
=======================================

What:  Builds every service once and wires their dependencies together.
Who:   create_app() stores the result on `app.state.services`; routes reach it
       through `dependencies.get_services`; tests build their own.

Dependency Graph:
    PermissionStore ─┬─▶ MembershipService ─┬─▶ TeamService
                     │                      ├─▶ FolderService
                     │                      ├─▶ FormService ──▶ PlacementService
                     ├─▶ UserService ───────┘
                     └─▶ ResponseService
    MailService + RealtimeHub ─▶ Outbox ─▶ (Team, Form, Placement, Response)
"""

from dataclasses import dataclass
from typing import Optional

from formmaker.services.folder_service import FolderService
from formmaker.services.form_service import FormService
from formmaker.services.mail_service import MailService
from formmaker.services.membership_service import MembershipService
from formmaker.services.outbox import Outbox
from formmaker.services.permission_store import PermissionStore
from formmaker.services.placement_service import PlacementService
from formmaker.services.realtime import RealtimeHub
from formmaker.services.response_service import ResponseService
from formmaker.services.team_service import TeamService
from formmaker.services.user_service import UserService


@dataclass
class Services:
    store: PermissionStore
    membership: MembershipService
    users: UserService
    teams: TeamService
    folders: FolderService
    forms: FormService
    placement: PlacementService
    responses: ResponseService
    mail: MailService
    hub: RealtimeHub
    outbox: Outbox


def build_services(
    mail: Optional[MailService] = None,
    hub: Optional[RealtimeHub] = None,
) -> Services:
    """Pass `mail` / `hub` to substitute collaborators (tests do)."""
    mail = mail or MailService()
    hub = hub or RealtimeHub()
    outbox = Outbox(mail, hub)

    store = PermissionStore()
    membership = MembershipService(store)
    users = UserService(store)
    forms = FormService(store, membership, users, outbox)
    return Services(
        store=store,
        membership=membership,
        users=users,
        teams=TeamService(store, membership, users, outbox),
        folders=FolderService(store, membership),
        forms=forms,
        placement=PlacementService(store, forms, membership, outbox),
        responses=ResponseService(store, outbox),
        mail=mail,
        hub=hub,
        outbox=outbox,
    )
