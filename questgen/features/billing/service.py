"""
Subscription lifecycle manager.

Per-user state machine keyed on (plan, pending plan):

    Active(plan) --request_upgrade--> Active(plan) + Pending(new)
    Active(plan) + Pending(new) --approve--> Active(new)   (usage reset, new expiry)
    Active(plan) + Pending(new) --reject--> Active(plan)

Coordinates:
- Transaction ledger (pending -> success | rejected | failed)
- User records (resolved by id, email fallback for legacy records)
- Notification dispatch on approval

approve/reject on an unknown or already-terminal transaction is a no-op.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple, Union

from questgen.core.errors import ValidationError
from questgen.core.store import locked
from questgen.features.billing.expiry import compute_expiry
from questgen.features.billing.ledger import TransactionLedger
from questgen.features.notifications.service import NotificationDispatcher, NotificationKind
from questgen.features.plans.service import PAID_PLANS
from questgen.features.usage.service import reset_on_plan_change
from questgen.features.users.service import UserRepository
from questgen.models.transaction import Transaction, TransactionStatus
from questgen.models.user import SubscriptionPlan, User


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of an admin decision."""
    applied: bool
    transaction: Optional[Transaction] = None
    users: Tuple[User, ...] = ()
    reason: Optional[str] = None  # "not_found" when nothing was applied


NOT_FOUND = LifecycleResult(applied=False, reason="not_found")


class SubscriptionLifecycle:
    def __init__(
        self,
        users: UserRepository,
        ledger: TransactionLedger,
        notifier: NotificationDispatcher,
        clock: Optional[Clock] = None,
    ):
        self.users = users
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock or utc_now

    def request_upgrade(
        self,
        user: User,
        plan: SubscriptionPlan,
        amount: Union[int, float],
    ) -> Transaction:
        """
        Teacher submitted a payment: record it pending and mark the plan pending.

        The current plan and usage counter are left alone until an admin
        decides. A request made while another is pending replaces the pending
        plan; the earlier transaction stays pending for the admin to resolve.

        Raises:
            ValidationError: plan is not a paid plan or amount is negative
        """
        if plan not in PAID_PLANS:
            raise ValidationError(f"Plan {plan} cannot be requested")
        if amount is None or amount < 0:
            raise ValidationError("Amount must be zero or positive")

        now = self.clock()
        with locked(self.ledger.store):
            stale = self.ledger.pending_for(user.ref)
            if stale:
                logger.warning(
                    "[billing] new request supersedes pending plan",
                    extra={
                        "user_ref": user.ref.describe(),
                        "stale_tx_ids": [tx.id for tx in stale],
                        "requested_plan": plan,
                    },
                )
            tx = self.ledger.record_pending(user, plan, amount, now=now)
            self.users.update_matching(
                user.ref,
                lambda u: u.model_copy(update={"pending_subscription_plan": plan}),
            )

        logger.info(
            "[billing] upgrade requested",
            extra={"tx_id": tx.id, "user_ref": user.ref.describe(), "plan": plan, "amount": amount},
        )
        return tx

    def approve(self, tx_id: str) -> LifecycleResult:
        """
        Admin approved tx_id: apply its plan with a fresh period and usage.

        Every user record resolving to the transaction's owner gets the new
        plan, a cleared pending plan, papers_generated = 0 and the new expiry.
        """
        now = self.clock()
        with locked(self.ledger.store):
            tx = self.ledger.transition(tx_id, TransactionStatus.SUCCESS)
            if tx is None:
                return NOT_FOUND

            expiry = compute_expiry(tx.plan, now)

            def apply_plan(user: User) -> User:
                return reset_on_plan_change(user).model_copy(
                    update={
                        "subscription_plan": tx.plan,
                        "pending_subscription_plan": None,
                        "subscription_expiry": expiry,
                    }
                )

            updated = self.users.update_matching(tx.user_ref, apply_plan)

        logger.info(
            "[billing] approve",
            extra={
                "tx_id": tx.id,
                "plan": tx.plan,
                "expiry": expiry.isoformat() if expiry else None,
                "users_updated": len(updated),
            },
        )
        if updated:
            self.notifier.notify(
                NotificationKind.UPGRADE,
                updated[0],
                {"plan": tx.plan, "expiry": expiry.isoformat() if expiry else None},
            )
        return LifecycleResult(applied=True, transaction=tx, users=tuple(updated))

    def reject(self, tx_id: str) -> LifecycleResult:
        """Admin rejected tx_id: clear the pending plan, leave plan/expiry/usage."""
        return self._close_without_upgrade(tx_id, TransactionStatus.REJECTED)

    def mark_failed(self, tx_id: str) -> LifecycleResult:
        """Admin found no matching payment: same effect on the user as reject."""
        return self._close_without_upgrade(tx_id, TransactionStatus.FAILED)

    def _close_without_upgrade(self, tx_id: str, status: TransactionStatus) -> LifecycleResult:
        with locked(self.ledger.store):
            tx = self.ledger.transition(tx_id, status)
            if tx is None:
                return NOT_FOUND
            updated = self.users.update_matching(
                tx.user_ref,
                lambda u: u.model_copy(update={"pending_subscription_plan": None}),
            )

        logger.info(
            f"[billing] {status.value}",
            extra={"tx_id": tx.id, "plan": tx.plan, "users_updated": len(updated)},
        )
        return LifecycleResult(applied=True, transaction=tx, users=tuple(updated))
