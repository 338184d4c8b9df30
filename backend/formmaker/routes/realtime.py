"""
Formmaker Backend — Real-time WebSocket Endpoint
==================================================

The connecting user is identified by the X-User-ID header, the same as on
the HTTP API; a connection without a valid one is closed with 1008.

Clients send JSON commands over /ws:
    {"action": "join",  "room": "<team or form id>"}
    {"action": "leave", "room": "<team or form id>"}

Each command is acknowledged with {"event": "joined" | "left", "room": ...}.
Joining needs view on the team or form. Frames that are not JSON, unknown
commands and refused joins get {"event": "error", "data": {"message": ...}}.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from formmaker.database import async_session_factory
from formmaker.services.realtime import may_join

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

_ACKS = {"join": "joined", "leave": "left"}
_USAGE = "Expected {\"action\": \"join\"|\"leave\", \"room\": \"<id>\"}"


def _user_id(websocket: WebSocket) -> Optional[uuid.UUID]:
    raw = websocket.headers.get("x-user-id")
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "data": {"message": message}})


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    services = websocket.app.state.services
    hub = services.hub
    user_id = _user_id(websocket)
    if user_id is None:
        logger.warning("Refused WebSocket without a valid X-User-ID header")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await _send_error(websocket, "Messages must be JSON. " + _USAGE)
                continue
            action = message.get("action") if isinstance(message, dict) else None
            room = message.get("room") if isinstance(message, dict) else None
            if action not in _ACKS or not isinstance(room, str) or not room:
                await _send_error(websocket, _USAGE)
                continue
            if action == "join":
                async with async_session_factory() as db:
                    allowed = await may_join(db, services.store, user_id, room)
                if not allowed:
                    logger.warning("User %s refused room %s", user_id, room)
                    await _send_error(websocket, "You do not have permission to join this room")
                    continue
                hub.join(room, websocket)
            else:
                hub.leave(room, websocket)
            await websocket.send_json({"event": _ACKS[action], "room": room})
    except WebSocketDisconnect:
        logger.debug("WebSocket disconnected for user %s", user_id)
    finally:
        hub.disconnect(websocket)
