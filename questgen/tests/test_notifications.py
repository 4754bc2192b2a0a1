"""
Tests for notification rendering and dispatchers.
"""
import json
import logging

import httpx

from questgen.features.notifications.service import (
    LoggingNotificationDispatcher,
    NotificationKind,
    WebhookNotificationDispatcher,
    build_dispatcher,
    render_notification,
)
from questgen.models.user import User


USER = User(id="u1", name="Asha", email="asha@school.test", subscription_plan="monthly")


def test_render_templates():
    subject, body = render_notification(NotificationKind.EXPIRY_WARNING, USER, {"days_left": 4})
    assert subject == "Subscription Expiring Soon"
    assert "4 days" in body

    subject, _ = render_notification(NotificationKind.EXPIRED, USER)
    assert subject == "Subscription Expired"

    subject, body = render_notification(NotificationKind.UPGRADE, USER, {"plan": "yearly", "expiry": "2027-03-01"})
    assert subject == "Plan Upgrade Approved"
    assert "yearly" in body and "2027-03-01" in body


def test_webhook_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    dispatcher = WebhookNotificationDispatcher("https://hooks.example/notify", client=client)
    dispatcher.notify(NotificationKind.UPGRADE, USER, {"plan": "monthly"})

    assert len(seen) == 1
    payload = json.loads(seen[0].content)
    assert payload["kind"] == "UPGRADE"
    assert payload["email"] == "asha@school.test"
    assert payload["extra"] == {"plan": "monthly"}
    assert seen[0].headers["X-QuestGen-Notification"] == "UPGRADE"


def test_webhook_failure_is_swallowed(caplog):
    def handler(request):
        return httpx.Response(500)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    dispatcher = WebhookNotificationDispatcher("https://hooks.example/notify", client=client)
    with caplog.at_level(logging.WARNING):
        dispatcher.notify(NotificationKind.EXPIRED, USER)
    assert any("webhook delivery failed" in r.getMessage() for r in caplog.records)


def test_transport_error_is_swallowed():
    def handler(request):
        raise httpx.ConnectError("refused")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    WebhookNotificationDispatcher("https://hooks.example/notify", client=client).notify(NotificationKind.EXPIRED, USER)


def test_malformed_url_is_swallowed(caplog):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    dispatcher = WebhookNotificationDispatcher("http://[bad", client=client)
    with caplog.at_level(logging.WARNING):
        dispatcher.notify(NotificationKind.EXPIRY_WARNING, USER, {"days_left": 3})
    assert any("webhook delivery failed" in r.getMessage() for r in caplog.records)


def test_build_dispatcher_defaults_to_logging():
    assert isinstance(build_dispatcher(None), LoggingNotificationDispatcher)
    assert isinstance(build_dispatcher("https://hooks.example"), WebhookNotificationDispatcher)
