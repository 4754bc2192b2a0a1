"""
Admin-only billing router.
Requires an admin user (X-User-Id) or the X-Admin-Key header.
Lists transactions and approves, rejects or fails pending upgrade requests.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from questgen.api.dependencies import get_ledger, get_lifecycle, require_admin
from questgen.api.schemas import public_user
from questgen.core.errors import ValidationError
from questgen.core.store import dump_record
from questgen.features.billing.ledger import TransactionLedger
from questgen.features.billing.service import LifecycleResult, SubscriptionLifecycle
from questgen.models.transaction import TransactionStatus


logger = logging.getLogger("questgen.admin_billing")

router = APIRouter(prefix="/v1/admin/transactions", tags=["admin-billing"])


def _result_payload(result: LifecycleResult) -> Dict[str, Any]:
    return {
        "applied": result.applied,
        "reason": result.reason,
        "transaction": dump_record(result.transaction) if result.transaction else None,
        "users": [public_user(user) for user in result.users],
    }


@router.get("")
def list_transactions(
    status: Optional[str] = Query(None, description="pending | success | rejected | failed"),
    actor: str = Depends(require_admin),
    ledger: TransactionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    if status is not None and status not in {s.value for s in TransactionStatus}:
        raise ValidationError(f"Unknown status: {status}")
    transactions = ledger.list(status=status)
    return {"total": len(transactions), "transactions": [dump_record(tx) for tx in transactions]}


@router.post("/{tx_id}/approve")
def approve_transaction(
    tx_id: str,
    actor: str = Depends(require_admin),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    """
    Apply the transaction's plan to its owner.

    Approving an unknown or already-decided transaction changes nothing and
    answers applied=false, reason="not_found".
    """
    result = lifecycle.approve(tx_id)
    logger.info("[admin_billing] approve", extra={"tx_id": tx_id, "actor": actor, "applied": result.applied})
    return _result_payload(result)


@router.post("/{tx_id}/reject")
def reject_transaction(
    tx_id: str,
    actor: str = Depends(require_admin),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    result = lifecycle.reject(tx_id)
    logger.info("[admin_billing] reject", extra={"tx_id": tx_id, "actor": actor, "applied": result.applied})
    return _result_payload(result)


@router.post("/{tx_id}/fail")
def fail_transaction(
    tx_id: str,
    actor: str = Depends(require_admin),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> Dict[str, Any]:
    """No matching payment arrived: close the request without upgrading."""
    result = lifecycle.mark_failed(tx_id)
    logger.info("[admin_billing] fail", extra={"tx_id": tx_id, "actor": actor, "applied": result.applied})
    return _result_payload(result)
