"""
Formmaker Backend — Delete Cascades
=====================================

What:  Bulk removal of forms and folders, shared by every operation that
       deletes something owning them (form hard-delete, folder delete, team
       delete, account deletion).
How:   Plain DELETE statements in dependency order. Both helpers run inside
       the caller's transaction and never commit.
"""

import uuid
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.models.folder import Folder
from formmaker.models.form import Form, form_favourites
from formmaker.models.response import Response
from formmaker.permissions import ResourceType
from formmaker.services.permission_store import PermissionStore


async def purge_forms(db: AsyncSession, store: PermissionStore, form_ids: Sequence[uuid.UUID]) -> None:
    """
    Permanently removes forms: responses first, then favourites and grants,
    then the rows.
    """
    ids = list(form_ids)
    if not ids:
        return
    await db.execute(delete(Response).where(Response.form_id.in_(ids)))
    await db.execute(delete(form_favourites).where(form_favourites.c.form_id.in_(ids)))
    await store.purge(db, ResourceType.FORM, ids)
    await db.execute(
        delete(Form).where(Form.id.in_(ids)).execution_options(synchronize_session="fetch")
    )


async def purge_folders(db: AsyncSession, store: PermissionStore, folder_ids: Sequence[uuid.UUID]) -> None:
    """Drops the folders' grants and rows. Their forms must already be gone."""
    ids = list(folder_ids)
    if not ids:
        return
    await store.purge(db, ResourceType.FOLDER, ids)
    await db.execute(
        delete(Folder).where(Folder.id.in_(ids)).execution_options(synchronize_session="fetch")
    )
