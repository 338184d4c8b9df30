"""
Formmaker Backend — Notification Outbox
=========================================

What:  Holds side effects that leave the process (emails, real-time events)
       until the database work that produced them has committed, then
       delivers them from a background worker.

Flow:
    service ──stage()──▶ session.info["outbox"]
                               │
           get_db_session commits ──release()──▶ asyncio.Queue ──worker──▶ MailService
                               │                                      └──▶ RealtimeHub
           get_db_session rolls back ──discard()──▶ dropped

Delivery is best-effort: a failed delivery is logged and never reaches the
request that staged it. A full queue drops the message with a warning.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from formmaker.config import settings
from formmaker.services.mail_service import EmailMessage, MailDeliveryError, MailService
from formmaker.services.realtime import RealtimeHub

logger = logging.getLogger(__name__)

_SESSION_KEY = "outbox"


@dataclass(frozen=True)
class RealtimeEvent:
    room: str
    event: str
    data: Dict[str, Any] = field(default_factory=dict)


Notification = Union[EmailMessage, RealtimeEvent]


class Outbox:

    def __init__(
        self,
        mail_service: MailService,
        hub: RealtimeHub,
        maxsize: int = settings.outbox_queue_size,
    ):
        self.mail_service = mail_service
        self.hub = hub
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._worker: Optional[asyncio.Task] = None

    # ── Staging (request side) ────────────────────────────────────────────

    def stage(self, session: AsyncSession, notification: Notification) -> None:
        session.info.setdefault(_SESSION_KEY, []).append(notification)

    def staged(self, session: AsyncSession) -> List[Notification]:
        return list(session.info.get(_SESSION_KEY, ()))

    def release(self, session: AsyncSession) -> int:
        """Hands staged notifications to the worker. Call only after commit."""
        notifications = session.info.pop(_SESSION_KEY, [])
        for notification in notifications:
            try:
                self._queue.put_nowait(notification)
            except asyncio.QueueFull:
                logger.warning("Outbox full; dropping %s", notification)
        return len(notifications)

    def discard(self, session: AsyncSession) -> int:
        notifications = session.info.pop(_SESSION_KEY, [])
        if notifications:
            logger.info("Discarded %d notification(s) after rollback", len(notifications))
        return len(notifications)

    # ── Worker ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="formmaker-outbox")
            logger.info("Outbox worker started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Outbox worker stopped (%d notification(s) undelivered)", self.pending)

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self.deliver(notification)
            finally:
                self._queue.task_done()

    async def deliver(self, notification: Notification) -> bool:
        """Delivers one notification; returns False (and logs) if delivery failed."""
        try:
            if isinstance(notification, EmailMessage):
                await self.mail_service.send(notification)
            else:
                await self.hub.emit(notification.room, notification.event, notification.data)
            return True
        except MailDeliveryError as e:
            logger.warning("Email '%s' to %s not delivered: %s", notification.subject, notification.to, e)
        except Exception as e:
            logger.error("Unexpected error delivering %s: %s", notification, e, exc_info=True)
        return False
