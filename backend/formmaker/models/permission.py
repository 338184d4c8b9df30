"""
Formmaker Backend — Permission Grant Model
============================================

What:  ORM model for the `permission_grants` side table, the persisted form
       of every team, folder and form permission map.

Row shape:
    (resource_type, resource_id, user_id, capability) is the primary key, so
    a user holds each capability at most once per resource. `origin` records
    whether the grant came from ownership, team membership or a direct
    invitation. Revocation does not look at it.

Query Patterns:
    - Load one map:          WHERE resource_type = ? AND resource_id = ?
    - Resources of a user:   WHERE resource_type = ? AND user_id = ? AND capability = ?
      → idx_permission_grants_user
"""

import uuid

from sqlalchemy import Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from formmaker.database import Base
from formmaker.permissions import GrantOrigin


class PermissionGrant(Base):
    __tablename__ = "permission_grants"

    resource_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    resource_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    capability: Mapped[str] = mapped_column(String(16), primary_key=True)
    origin: Mapped[str] = mapped_column(
        String(16), nullable=False, default=GrantOrigin.OWNER.value
    )

    __table_args__ = (
        Index("idx_permission_grants_user", "resource_type", "user_id", "capability"),
    )

    def __repr__(self) -> str:
        return (
            f"<PermissionGrant({self.resource_type}:{self.resource_id} "
            f"user={self.user_id} {self.capability} via {self.origin})>"
        )
