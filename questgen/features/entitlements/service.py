"""
questgen/features/entitlements/service.py

Entitlement evaluator.

Handles:
- Paper generation gate (can_generate)
- Archive download/edit gate (can_download_or_edit)
- Quota metadata for status displays

Pure decisions over (user, now): nothing is read from or written to the
store, and no prompts are raised here. Callers surface messages and upgrade
prompts from the returned EntitlementDecision.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import logging

from questgen.features.plans.service import UNLIMITED, get_plan_entitlement
from questgen.models.user import User


logger = logging.getLogger(__name__)


class EntitlementStatus(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


class EntitlementReason(str, Enum):
    UPGRADE_PENDING = "upgrade_pending"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    MONTHLY_LIMIT_REACHED = "monthly_limit_reached"
    FREE_LIMIT_REACHED = "free_limit_reached"
    UNKNOWN_PLAN = "unknown_plan"
    UPGRADE_REQUIRED = "upgrade_required"


@dataclass(frozen=True)
class EntitlementDecision:
    status: EntitlementStatus
    reason: Optional[EntitlementReason] = None
    message: Optional[str] = None
    prompt_upgrade: bool = False
    plan: Optional[str] = None
    limit: Optional[int] = None
    current_usage: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.status == EntitlementStatus.ALLOW

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None or self.limit == UNLIMITED or self.current_usage is None:
            return None
        return max(0, self.limit - self.current_usage)


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if getattr(now, "tzinfo", None) is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def is_expired(user: User, now: Optional[Any] = None) -> bool:
    if user.subscription_expiry is None:
        return False
    return _normalize_now(now) > user.subscription_expiry


def _allow(user: User, limit: Optional[int] = None) -> EntitlementDecision:
    return EntitlementDecision(
        status=EntitlementStatus.ALLOW,
        plan=user.subscription_plan,
        limit=limit,
        current_usage=user.papers_generated,
    )


def _deny(
    user: User,
    reason: EntitlementReason,
    message: str,
    *,
    prompt_upgrade: bool,
    limit: Optional[int] = None,
) -> EntitlementDecision:
    logger.warning(
        "[entitlement] DENY",
        extra={
            "user_ref": user.ref.describe(),
            "plan": user.subscription_plan,
            "reason": reason.value,
            "current_usage": user.papers_generated,
            "limit": limit,
        },
    )
    return EntitlementDecision(
        status=EntitlementStatus.DENY,
        reason=reason,
        message=message,
        prompt_upgrade=prompt_upgrade,
        plan=user.subscription_plan,
        limit=limit,
        current_usage=user.papers_generated,
    )


def can_generate(user: User, now: Optional[Any] = None) -> EntitlementDecision:
    """
    May user generate a paper now? First matching rule wins:

    1. admin -> allow
    2. pending upgrade -> deny
    3. expired subscription -> deny (prompt upgrade)
    4. yearly -> allow, time-bounded only
    5. monthly -> allow while papers_generated < 5
    6. free -> allow while papers_generated < 1
    """
    if user.is_admin:
        return _allow(user, limit=UNLIMITED)

    if user.pending_subscription_plan:
        return _deny(
            user,
            EntitlementReason.UPGRADE_PENDING,
            "upgrade pending approval",
            prompt_upgrade=False,
        )

    if is_expired(user, now):
        return _deny(
            user,
            EntitlementReason.SUBSCRIPTION_EXPIRED,
            "subscription expired",
            prompt_upgrade=True,
        )

    plan = user.subscription_plan
    limit = get_plan_entitlement(plan, "papers.max")
    if limit is None:
        return _deny(
            user,
            EntitlementReason.UNKNOWN_PLAN,
            "unknown plan",
            prompt_upgrade=True,
        )

    if limit == UNLIMITED:
        return _allow(user, limit=limit)

    if user.papers_generated < limit:
        return _allow(user, limit=limit)

    if plan == "monthly":
        return _deny(
            user,
            EntitlementReason.MONTHLY_LIMIT_REACHED,
            f"monthly limit reached ({limit})",
            prompt_upgrade=True,
            limit=limit,
        )
    return _deny(
        user,
        EntitlementReason.FREE_LIMIT_REACHED,
        f"free trial limit reached ({limit})",
        prompt_upgrade=True,
        limit=limit,
    )


def can_download_or_edit(user: User, loaded_from_archive: bool) -> EntitlementDecision:
    """Papers reopened from history are view-only unless yearly or admin."""
    if not loaded_from_archive or user.is_admin:
        return _allow(user)
    if get_plan_entitlement(user.subscription_plan, "archive.edit"):
        return _allow(user)
    return _deny(
        user,
        EntitlementReason.UPGRADE_REQUIRED,
        "upgrade required",
        prompt_upgrade=True,
    )


def get_entitlement_metadata(user: User, now: Optional[Any] = None) -> Dict[str, Any]:
    """Quota summary for status displays (mirrors the usage card)."""
    current_usage = user.papers_generated
    expired = is_expired(user, now)
    limit = UNLIMITED if user.is_admin else get_plan_entitlement(user.subscription_plan, "papers.max")

    if limit is None:
        return {
            "status": "disabled",
            "limit": None,
            "current_usage": current_usage,
            "remaining": None,
            "expired": expired,
        }

    if limit == UNLIMITED:
        return {
            "status": "unlimited",
            "limit": "unlimited",
            "current_usage": current_usage,
            "remaining": "unlimited",
            "expired": expired,
        }

    remaining = max(0, limit - current_usage)
    if current_usage >= limit:
        status = "at_limit"
    elif current_usage >= limit * 0.7:
        status = "approaching_limit"
    else:
        status = "ok"

    return {
        "status": status,
        "limit": limit,
        "current_usage": current_usage,
        "remaining": remaining,
        "expired": expired,
    }
