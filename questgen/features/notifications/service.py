"""
Notification dispatch.

Fire-and-forget: dispatchers never raise into the subscription flow and
return nothing the caller relies on.

Kinds:
- EXPIRY_WARNING: plan expires within the warning window ({"days_left"})
- EXPIRED: plan is past its expiry
- UPGRADE: a plan request was approved ({"plan", "expiry"})
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx

from questgen.core.logging import log_event
from questgen.models.user import User


logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    EXPIRY_WARNING = "EXPIRY_WARNING"
    EXPIRED = "EXPIRED"
    UPGRADE = "UPGRADE"


class NotificationDispatcher(Protocol):
    def notify(self, kind: NotificationKind, user: User, extra: Optional[Dict[str, Any]] = None) -> None:
        ...


def render_notification(kind: NotificationKind, user: User, extra: Optional[Dict[str, Any]] = None) -> Tuple[str, str]:
    """Subject and body shown to the user."""
    extra = extra or {}
    name = user.name or user.email
    if kind == NotificationKind.EXPIRY_WARNING:
        days = extra.get("days_left")
        return (
            "Subscription Expiring Soon",
            f"Hi {name}, your plan will expire in {days} days. Renew now to avoid interruption.",
        )
    if kind == NotificationKind.EXPIRED:
        return (
            "Subscription Expired",
            f"Hi {name}, your plan has expired. Please renew your plan to continue generating papers.",
        )
    plan = extra.get("plan") or user.subscription_plan
    expiry = extra.get("expiry")
    body = f"Hi {name}, your upgrade to the {plan} plan has been approved."
    if expiry:
        body += f" It is valid until {expiry}."
    return ("Plan Upgrade Approved", body)


def _payload(kind: NotificationKind, user: User, extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    subject, body = render_notification(kind, user, extra)
    return {
        "kind": kind.value,
        "user_id": user.id,
        "email": user.email,
        "subject": subject,
        "body": body,
        "extra": extra or {},
        "sent_at": datetime.now(timezone.utc).isoformat(),
    }


class LoggingNotificationDispatcher:
    """Writes each notification as a structured log line."""

    def notify(self, kind: NotificationKind, user: User, extra: Optional[Dict[str, Any]] = None) -> None:
        subject, body = render_notification(kind, user, extra)
        log_event(
            "info",
            "[notifications] sent",
            user_ref=user.ref.describe(),
            kind=kind.value,
            extra={"subject": subject, "body": body, **(extra or {})},
        )


class WebhookNotificationDispatcher:
    """POSTs notifications as JSON to a webhook (email/SMS bridge)."""

    def __init__(self, url: str, timeout_seconds: float = 5.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    def notify(self, kind: NotificationKind, user: User, extra: Optional[Dict[str, Any]] = None) -> None:
        body = json.dumps(_payload(kind, user, extra), default=str)
        headers = {
            "Content-Type": "application/json",
            "X-QuestGen-Notification": kind.value,
        }
        try:
            if self._client is not None:
                response = self._client.post(self.url, content=body, headers=headers)
            else:
                with httpx.Client(timeout=self.timeout_seconds) as client:
                    response = client.post(self.url, content=body, headers=headers)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(
                "[notifications] webhook delivery failed",
                extra={"kind": kind.value, "user_ref": user.ref.describe(), "error": str(exc)},
            )
            return
        logger.info(
            "[notifications] webhook delivered",
            extra={"kind": kind.value, "user_ref": user.ref.describe(), "status": response.status_code},
        )


def build_dispatcher(webhook_url: Optional[str] = None, timeout_seconds: float = 5.0) -> NotificationDispatcher:
    if webhook_url:
        return WebhookNotificationDispatcher(webhook_url, timeout_seconds=timeout_seconds)
    return LoggingNotificationDispatcher()
