"""
FastAPI dependencies shared by the routers: the service container and the
acting user.

The acting user's id arrives in the X-User-ID header, set by the
authentication gateway in front of this service after it has verified the
session.
"""

import uuid
from typing import Optional

from fastapi import Header, Request

from formmaker.container import Services
from formmaker.exceptions import AccessDeniedError


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> uuid.UUID:
    if not x_user_id:
        raise AccessDeniedError(message="Authentication required", required="X-User-ID")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise AccessDeniedError(message="Malformed X-User-ID header", required="X-User-ID")
