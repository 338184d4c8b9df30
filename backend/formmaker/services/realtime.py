"""
Formmaker Backend — Real-time Hub
===================================

What:  In-process registry of WebSocket connections grouped into rooms.
How:   Clients connect to /ws and send {"action": "join" | "leave", "room": "<id>"}.
       Rooms are named after the team or form id, and joining one needs view
       on that team or form (`may_join()`). `emit()` pushes
       {"event": ..., "room": ..., "data": ...} to every socket in a room.

Events currently emitted (always after commit, through the outbox):
    teamMemberUpdate   room = team id   membership changed
    formUpdate         room = form id   form content or placement changed

A socket whose send fails is dropped from every room; the remaining
recipients still get the event.
"""

import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.permissions import ResourceType, can_view
from formmaker.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)


class RealtimeHub:

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)

    def join(self, room: str, websocket: WebSocket) -> None:
        self._rooms[room].add(websocket)

    def leave(self, room: str, websocket: WebSocket) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[room]

    def disconnect(self, websocket: WebSocket) -> None:
        """Removes the socket from every room it joined."""
        for room in list(self._rooms):
            self.leave(room, websocket)

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: Optional[Dict[str, Any]] = None) -> int:
        """Sends an event to everyone in `room`. Returns how many sockets received it."""
        delivered = 0
        for websocket in list(self._rooms.get(room, ())):
            try:
                await websocket.send_json({"event": event, "room": room, "data": data or {}})
                delivered += 1
            except Exception as e:
                logger.warning("Dropping socket from room %s after failed send: %s", room, e)
                self.disconnect(websocket)
        return delivered


async def may_join(
    db: AsyncSession, store: PermissionStore, user_id: uuid.UUID, room: str
) -> bool:
    """
    A room is named after a team or form id; joining it needs view on that
    team or form. Unknown rooms cannot be joined.
    """
    try:
        resource_id = uuid.UUID(room)
    except ValueError:
        return False
    for resource_type in (ResourceType.TEAM, ResourceType.FORM):
        permissions = await store.load(db, resource_type, resource_id)
        if permissions:
            return can_view(user_id, permissions)
    return False
