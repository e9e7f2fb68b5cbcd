import json
import logging
from uuid import uuid4

import httpx
import pytest

from app.core.context import clear_context, set_job_id, set_request_id
from app.core.logging import JsonFormatter, RequestContextFilter
from app.services import notifications
from app.services.notifications import LoanNotification, WebhookNotifier, notify_safely
from tests.fakes import RecordingNotifier


def _notification() -> LoanNotification:
    return LoanNotification(
        event="loan.approved",
        loan_id=uuid4(),
        user_id=uuid4(),
        payload={"status": "APPROVED"},
    )


def test_notification_as_json():
    notification = _notification()

    assert notification.as_json() == {
        "event": "loan.approved",
        "loan_id": str(notification.loan_id),
        "user_id": str(notification.user_id),
        "payload": {"status": "APPROVED"},
    }


@pytest.mark.asyncio
async def test_notify_safely_swallows_delivery_errors(caplog):
    with caplog.at_level(logging.ERROR):
        delivered = await notify_safely(RecordingNotifier(fail=True), _notification())

    assert delivered is False
    assert "Failed to deliver loan notification loan.approved" in caplog.text


@pytest.mark.asyncio
async def test_notify_safely_reports_success():
    notifier = RecordingNotifier()

    assert await notify_safely(notifier, _notification()) is True
    assert len(notifier.notifications) == 1


@pytest.mark.asyncio
async def test_webhook_notifier_posts_json(monkeypatch):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(notifications.httpx, "AsyncClient", client_factory)
    notification = _notification()

    await WebhookNotifier("https://hooks.test/loans", timeout_seconds=2).notify(notification)

    assert len(requests) == 1
    assert str(requests[0].url) == "https://hooks.test/loans"
    assert json.loads(requests[0].content) == notification.as_json()


@pytest.mark.asyncio
async def test_webhook_notifier_raises_on_error_status(monkeypatch):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(lambda request: httpx.Response(500)), **kwargs)

    monkeypatch.setattr(notifications.httpx, "AsyncClient", client_factory)

    with pytest.raises(httpx.HTTPStatusError):
        await WebhookNotifier("https://hooks.test/loans").notify(_notification())


def test_json_formatter_includes_context_and_loan_id():
    set_request_id("req-1")
    set_job_id("sweep-abc")
    try:
        record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "Generated %s documents", (4,), None)
        record.loan_id = "loan-7"
        RequestContextFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        clear_context()

    assert payload["message"] == "Generated 4 documents"
    assert payload["request_id"] == "req-1"
    assert payload["job_id"] == "sweep-abc"
    assert payload["loan_id"] == "loan-7"
    assert payload["stream"] == "transactional"
