"""
Helpers shared by the resource services: entity loading with not-found
handling, capability checks and database-error translation.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.exceptions import AccessDeniedError, DatabaseError, FormmakerError, NotFoundError
from formmaker.permissions import Capability, can_delete, can_edit, can_view

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

_PREDICATES = {
    Capability.VIEW: can_view,
    Capability.EDIT: can_edit,
    Capability.DELETE: can_delete,
}


async def get_or_404(
    db: AsyncSession,
    model: Type[ModelT],
    entity_id: uuid.UUID,
    resource: Optional[str] = None,
) -> ModelT:
    entity = await db.get(model, entity_id)
    if entity is None:
        raise NotFoundError(resource=resource or model.__name__.lower(), resource_id=str(entity_id))
    return entity


def ensure_capability(
    actor_id: uuid.UUID,
    permissions: Mapping[uuid.UUID, Any],
    capability: Capability,
    resource: str,
    resource_id: uuid.UUID,
) -> None:
    """Raises AccessDeniedError unless `actor_id` holds `capability` in `permissions`."""
    if not _PREDICATES[capability](actor_id, permissions):
        logger.warning(
            "User %s denied %s on %s %s", actor_id, capability.value, resource, resource_id
        )
        raise AccessDeniedError(
            message=f"You do not have permission to {capability.value} this {resource}",
            required=capability.value,
            context={"resource": resource, "resource_id": str(resource_id)},
        )


def ensure_creator(actor_id: uuid.UUID, creator_id: uuid.UUID, resource: str, resource_id: uuid.UUID) -> None:
    if actor_id != creator_id:
        logger.warning("User %s is not the creator of %s %s", actor_id, resource, resource_id)
        raise AccessDeniedError(
            message=f"Only the creator of this {resource} can do that",
            required="creator",
            context={"resource": resource, "resource_id": str(resource_id)},
        )


@contextmanager
def database_errors(operation: str, **context: Any) -> Iterator[None]:
    """
    Translates driver/ORM failures into DatabaseError.

    Application errors raised inside the block propagate unchanged.
    """
    try:
        yield
    except FormmakerError:
        raise
    except SQLAlchemyError as e:
        logger.error("Database error during %s: %s", operation, e, exc_info=True)
        raise DatabaseError(
            message=f"Could not {operation}. Please try again.",
            context={**{k: str(v) for k, v in context.items()}, "error_type": type(e).__name__},
        ) from e
