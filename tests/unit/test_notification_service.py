"""
Unit tests for docapproval/services/notification_service.py

The notification function is replaced by an httpx.MockTransport and retries
run without waiting.
"""

import json

import httpx
import pytest
from tenacity import wait_none

from docapproval.services.notification_service import ApprovalNotifier


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FUNCTION_URL = "https://notify.example.com/functions/v1/send-approval-notification"
APPROVAL_ID = "6f1d3c2e-0b7a-4c55-9a0e-2f6b8f7f1a10"


def _notifier(handler, api_key="service-key", max_attempts=3) -> tuple[ApprovalNotifier, list]:
    requests = []

    def recording(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    notifier = ApprovalNotifier(
        function_url=FUNCTION_URL,
        api_key=api_key,
        client=client,
        max_attempts=max_attempts,
        retry_wait=wait_none(),
    )
    return notifier, requests


# ---------------------------------------------------------------------------
# notify
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_posts_type_and_approval_id():
    notifier, requests = _notifier(lambda r: httpx.Response(200, json={"ok": True}))

    delivered = await notifier.notify("approval_request", APPROVAL_ID)

    assert delivered is True
    assert len(requests) == 1
    assert json.loads(requests[0].content) == {
        "type": "approval_request",
        "documentApprovalId": APPROVAL_ID,
    }
    assert requests[0].headers["authorization"] == "Bearer service-key"
    await notifier.aclose()


@pytest.mark.asyncio
async def test_no_auth_header_without_key():
    notifier, requests = _notifier(lambda r: httpx.Response(200), api_key=None)

    await notifier.notify("approval_completed", APPROVAL_ID)

    assert "authorization" not in requests[0].headers


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    notifier, requests = _notifier(lambda r: httpx.Response(400, text="bad payload"))

    delivered = await notifier.notify("approval_rejected", APPROVAL_ID)

    assert delivered is False
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_server_error_retries_then_gives_up():
    notifier, requests = _notifier(lambda r: httpx.Response(503), max_attempts=3)

    delivered = await notifier.notify("approval_request", APPROVAL_ID)

    assert delivered is False
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_recovers_after_transient_failure():
    responses = iter([httpx.Response(502), httpx.Response(200)])
    notifier, requests = _notifier(lambda r: next(responses))

    assert await notifier.notify("approval_request", APPROVAL_ID) is True
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_network_error_is_swallowed():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    notifier, requests = _notifier(refuse, max_attempts=2)

    assert await notifier.notify("approval_overdue", APPROVAL_ID) is False
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_unconfigured_url_skips_delivery():
    notifier = ApprovalNotifier(function_url=None)

    assert await notifier.notify("approval_request", APPROVAL_ID) is False


@pytest.mark.asyncio
async def test_unknown_type_is_dropped():
    notifier, requests = _notifier(lambda r: httpx.Response(200))

    assert await notifier.notify("approval_escalated", APPROVAL_ID) is False
    assert requests == []
