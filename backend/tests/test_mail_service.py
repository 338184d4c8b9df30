"""
Formmaker Backend — Mail Service Unit Tests (Mocked Transport)
================================================================

What:  Tests for MailService against an httpx.MockTransport.
Why:   Tests should not send real email.
How:   Each test hands the service an AsyncClient whose transport answers
       with canned responses; tenacity's wait is patched out so retries
       are instant.

What we test:
    ✅ Successful send posts the expected JSON
    ✅ Disabled service (no API key) drops messages
    ✅ 4xx answers fail immediately
    ✅ 5xx / timeouts are retried, then give up
    ✅ Template helpers escape user-provided text
"""

from unittest.mock import patch

import httpx
import pytest
from tenacity import wait_none

from formmaker.config import settings
from formmaker.services.mail_service import (
    EmailMessage,
    MailDeliveryError,
    MailService,
    form_invitation_email,
    new_response_email,
)

MESSAGE = EmailMessage(to="bob@example.com", subject="Hello", html="<p>Hi</p>")


def _service(handler, api_key="re_test_key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MailService(client=client, api_url="https://mail.test/emails", api_key=api_key, sender="forms@test")


@pytest.fixture(autouse=True)
def no_backoff():
    with patch.object(MailService._post_with_retry.retry, "wait", wait_none()):
        yield


class TestSend:

    @pytest.mark.asyncio
    async def test_successful_send(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "msg_1"})

        mail = _service(handler)
        assert await mail.send(MESSAGE) is True

        assert len(seen) == 1
        assert seen[0].headers["Authorization"] == "Bearer re_test_key"
        body = seen[0].content.decode()
        assert '"to":["bob@example.com"]' in body.replace(" ", "")
        await mail.aclose()

    @pytest.mark.asyncio
    async def test_disabled_without_api_key(self):
        def handler(request):
            raise AssertionError("disabled service must not call the API")

        mail = _service(handler, api_key="")

        assert mail.enabled is False
        assert await mail.send(MESSAGE) is False

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422, text="invalid recipient")

        mail = _service(handler)
        with pytest.raises(MailDeliveryError, match="422"):
            await mail.send(MESSAGE)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_then_raises(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        mail = _service(handler)
        with pytest.raises(MailDeliveryError):
            await mail.send(MESSAGE)
        assert len(calls) == settings.retry_max_attempts

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        """A timeout followed by a 200 counts as delivered."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectTimeout("slow", request=request)
            return httpx.Response(200, json={"id": "msg_2"})

        mail = _service(handler)
        assert await mail.send(MESSAGE) is True
        assert len(calls) == 2


class TestTemplates:

    def test_new_response_email(self):
        message = new_response_email("alice@example.com", "Survey <b>", 4, "http://forms.test/responses/1")
        assert message.to == "alice@example.com"
        assert "#4" in message.html
        assert "Survey &lt;b&gt;" in message.html

    def test_form_invitation_links_to_form(self):
        message = form_invitation_email("bob@example.com", "alice", "Intake", "http://forms.test/forms/1")
        assert "http://forms.test/forms/1" in message.html
