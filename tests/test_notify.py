"""
Tests for the notification outbox and delivery transports.
"""

from __future__ import annotations

import json

import httpx
import pytest

from appointment_engine.core.config import settings
from appointment_engine.domain.entities.notification import NotificationEvent
from appointment_engine.infrastructure.notify.logging_transport import LoggingTransport
from appointment_engine.infrastructure.notify.outbox import OutboxNotifier
from appointment_engine.infrastructure.notify.webhook_transport import WebhookTransport


def _event(recipient_id: str = "cust-1") -> NotificationEvent:
    return NotificationEvent(
        event_type="appointment_booked",
        appointment_id="a1",
        recipient_id=recipient_id,
        payload={"date": "2030-01-08", "start_time": 540},
    )


class _ListTransport:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.delivered = []
        self.fail_for = fail_for or set()

    def deliver(self, event):
        if event.recipient_id in self.fail_for:
            raise ConnectionError("smtp unreachable")
        self.delivered.append(event)


def test_publish_queues_until_flush():
    transport = _ListTransport()
    outbox = OutboxNotifier(transport)

    outbox.publish(_event("cust-1"))
    outbox.publish(_event("staff-a"))

    assert outbox.pending() == 2
    assert transport.delivered == []
    assert outbox.flush() == 2
    assert outbox.pending() == 0
    assert [e.recipient_id for e in transport.delivered] == ["cust-1", "staff-a"]


def test_flush_drops_failed_deliveries_and_continues():
    transport = _ListTransport(fail_for={"staff-a"})
    outbox = OutboxNotifier(transport)
    for recipient in ("cust-1", "staff-a", "biz-1"):
        outbox.publish(_event(recipient))

    assert outbox.flush() == 2
    assert outbox.pending() == 0
    assert [e.recipient_id for e in transport.delivered] == ["cust-1", "biz-1"]


def test_logging_transport_accepts_events():
    LoggingTransport().deliver(_event())


def test_webhook_posts_event_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    WebhookTransport(url="https://notify.example/hook", client=client).deliver(_event())

    assert seen == [
        {
            "event_type": "appointment_booked",
            "appointment_id": "a1",
            "recipient_id": "cust-1",
            "payload": {"date": "2030-01-08", "start_time": 540},
        }
    ]


def test_webhook_error_status_raises():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    transport = WebhookTransport(url="https://notify.example/hook", client=client)

    with pytest.raises(httpx.HTTPStatusError):
        transport.deliver(_event())


def test_webhook_requires_url(monkeypatch):
    monkeypatch.setattr(settings, "NOTIFY_WEBHOOK_URL", None)
    with pytest.raises(ValueError):
        WebhookTransport(client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
