"""
Subscription API routes.

- GET  /v1/subscriptions/me: plan, usage, expiry and generation entitlement
- POST /v1/subscriptions/upgrade: submit a payment, plan goes pending
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends

from questgen.api.dependencies import get_current_user, get_ledger, get_lifecycle, get_now
from questgen.api.schemas import UpgradeRequest, decision_payload, public_user
from questgen.core.config import settings
from questgen.core.store import dump_record
from questgen.features.billing.expiry import days_to_expiry, expiry_status
from questgen.features.billing.ledger import TransactionLedger
from questgen.features.billing.service import SubscriptionLifecycle
from questgen.features.entitlements.service import can_generate, get_entitlement_metadata
from questgen.models.user import User


router = APIRouter(prefix="/v1/subscriptions", tags=["subscriptions"])


@router.get("/me")
def get_my_subscription(
    user: User = Depends(get_current_user),
    ledger: TransactionLedger = Depends(get_ledger),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    """Current plan state for the caller."""
    return {
        "user": public_user(user),
        "can_generate": decision_payload(can_generate(user, now)),
        "usage": get_entitlement_metadata(user, now),
        "expiry": {
            "status": expiry_status(user, now, settings.EXPIRY_WARNING_DAYS).value,
            "days_left": days_to_expiry(user, now),
            "expires_at": user.subscription_expiry.isoformat() if user.subscription_expiry else None,
        },
        "pending_transactions": [dump_record(tx) for tx in ledger.pending_for(user.ref)],
    }


@router.post("/upgrade", status_code=201)
def request_upgrade(
    body: UpgradeRequest,
    user: User = Depends(get_current_user),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    """
    Record a pending payment for body.plan.

    Generation stays blocked until an admin approves or rejects it.

    Errors:
        400: plan is not purchasable
    """
    tx = lifecycle.request_upgrade(user, body.plan, body.amount)
    refreshed = lifecycle.users.resolve_user(user.ref) or user
    return {"transaction": dump_record(tx), "user": public_user(refreshed)}
