"""
Subscription expiry.

Expiry is evaluated on demand: nothing transitions when the boundary is
crossed, the entitlement evaluator simply starts denying.
"""

import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from questgen.features.notifications.service import NotificationDispatcher, NotificationKind
from questgen.features.plans.service import get_plan
from questgen.models.user import User


DEFAULT_WARNING_DAYS = 5
_DAY_SECONDS = 24 * 60 * 60


class ExpiryStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def compute_expiry(plan_id: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """now + 30 days for monthly, now + 365 days for yearly, None otherwise."""
    plan = get_plan(plan_id)
    if plan is None or plan.period_days is None:
        return None
    return _normalize_now(now) + timedelta(days=plan.period_days)


def days_to_expiry(user: User, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days left, rounded up; <= 0 once expired. None without an expiry."""
    if user.subscription_expiry is None:
        return None
    remaining = (user.subscription_expiry - _normalize_now(now)).total_seconds()
    return math.ceil(remaining / _DAY_SECONDS)


def expiry_status(
    user: User,
    now: Optional[datetime] = None,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> ExpiryStatus:
    if user.subscription_expiry is None:
        return ExpiryStatus.NONE
    current = _normalize_now(now)
    if current > user.subscription_expiry:
        return ExpiryStatus.EXPIRED
    days = days_to_expiry(user, current)
    if days is not None and 0 < days <= warning_days:
        return ExpiryStatus.EXPIRING_SOON
    return ExpiryStatus.ACTIVE


def dispatch_expiry_notices(
    user: User,
    notifier: NotificationDispatcher,
    now: Optional[datetime] = None,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> Optional[NotificationKind]:
    """
    Send the warning or expired notice for user, if one applies.

    Called on user-identity change (login), not on every check.
    Returns the kind sent, or None.
    """
    current = _normalize_now(now)
    status = expiry_status(user, current, warning_days)
    if status == ExpiryStatus.EXPIRING_SOON:
        notifier.notify(
            NotificationKind.EXPIRY_WARNING,
            user,
            {"days_left": days_to_expiry(user, current)},
        )
        return NotificationKind.EXPIRY_WARNING
    if status == ExpiryStatus.EXPIRED:
        notifier.notify(NotificationKind.EXPIRED, user)
        return NotificationKind.EXPIRED
    return None
