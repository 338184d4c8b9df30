"""
Formmaker Backend — Mail Service
==================================

What:  Sends transactional emails (team/form invitations, new-response
       notices) through an HTTP mail API.
How:   One JSON POST per message via httpx; transient failures are retried
       with tenacity (exponential backoff with jitter). Message bodies are
       built by the small template functions below.
Who:   Only the outbox worker calls `send()`. Services never wait on email.

Failure Policy:
    A message that still fails after the last retry raises MailDeliveryError.
    The outbox logs it and moves on; the request that produced the message
    has already committed.
"""

import html
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from formmaker.config import settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """The mail API rejected a message or could not be reached."""


class _TransientMailError(MailDeliveryError):
    """Timeouts, connection failures and 5xx/429 answers; worth retrying."""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


# ══════════════════════════════════════════════════════════════════════════
# Templates
# ══════════════════════════════════════════════════════════════════════════


def team_invitation_email(to: str, inviter_name: str, team_name: str, invite_url: str) -> EmailMessage:
    return EmailMessage(
        to=to,
        subject=f"{inviter_name} invited you to join {team_name}",
        html=(
            f"<p>{html.escape(inviter_name)} invited you to collaborate in the team "
            f"<strong>{html.escape(team_name)}</strong>.</p>"
            f'<p><a href="{html.escape(invite_url)}">View invitation</a></p>'
        ),
    )


def form_invitation_email(to: str, inviter_name: str, form_title: str, invite_url: str) -> EmailMessage:
    return EmailMessage(
        to=to,
        subject=f"{inviter_name} shared the form {form_title} with you",
        html=(
            f"<p>{html.escape(inviter_name)} invited you to edit the form "
            f"<strong>{html.escape(form_title)}</strong>.</p>"
            f'<p><a href="{html.escape(invite_url)}">Open form</a></p>'
        ),
    )


def new_response_email(to: str, form_title: str, response_index: int, responses_url: str) -> EmailMessage:
    return EmailMessage(
        to=to,
        subject=f"New response to {form_title}",
        html=(
            f"<p>Your form <strong>{html.escape(form_title)}</strong> received "
            f"response #{response_index}.</p>"
            f'<p><a href="{html.escape(responses_url)}">See responses</a></p>'
        ),
    )


# ══════════════════════════════════════════════════════════════════════════
# Transport
# ══════════════════════════════════════════════════════════════════════════


class MailService:
    """
    Thin client for a Resend-style "send email" endpoint.

    An empty API key disables delivery: messages are logged at INFO and
    dropped, which is what local development and the test suite want.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_url: str = settings.mail_api_url,
        api_key: str = settings.mail_api_key,
        sender: str = settings.mail_sender,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self._client = client or httpx.AsyncClient(timeout=settings.mail_timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(self, message: EmailMessage) -> bool:
        """
        Delivers one message. Returns False when delivery is disabled.

        Raises:
            MailDeliveryError: the API refused the message, or every retry failed
        """
        if not self.enabled:
            logger.info("Mail delivery disabled; dropping '%s' to %s", message.subject, message.to)
            return False

        payload = {
            "from": self.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        await self._post_with_retry(payload)
        return True

    @retry(
        retry=retry_if_exception_type(_TransientMailError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _post_with_retry(self, payload: dict) -> None:
        start_time = time.time()
        try:
            response = await self._client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise _TransientMailError(f"Mail API unreachable: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code == 429 or response.status_code >= 500:
            raise _TransientMailError(
                f"Mail API answered {response.status_code} after {duration_ms:.0f}ms"
            )
        if response.status_code >= 400:
            raise MailDeliveryError(
                f"Mail API rejected message ({response.status_code}): {response.text[:200]}"
            )
        logger.info("Mail sent to %s in %.0fms", payload["to"][0], duration_ms)

    async def aclose(self) -> None:
        await self._client.aclose()
