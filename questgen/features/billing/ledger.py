"""
Transaction ledger.

Append-only log of payment / upgrade requests, newest first. Records are
never removed; the only mutation is a status transition out of pending.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

from questgen.core.errors import ValidationError
from questgen.core.store import (
    KeyValueStore,
    JsonCollection,
    TRANSACTIONS_KEY,
    parse_records,
    dump_record,
)
from questgen.models.transaction import Transaction, TransactionStatus
from questgen.models.user import SubscriptionPlan, User, UserRef


logger = logging.getLogger(__name__)


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def belongs_to(tx: Transaction, ref: UserRef) -> bool:
    """Same id-first, email-fallback rule the user resolver applies."""
    if tx.user_id and ref.user_id:
        return tx.user_id == ref.user_id
    if not tx.user_email or not ref.email:
        return False
    return tx.user_email.strip().lower() == ref.email.strip().lower()


class TransactionLedger:
    """Transactions collection over the key-value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._collection = JsonCollection(store, TRANSACTIONS_KEY)

    def list(
        self,
        status: Optional[Union[TransactionStatus, str]] = None,
        user: Optional[UserRef] = None,
    ) -> List[Transaction]:
        """List transactions newest first, optionally filtered."""
        records = [tx for _, tx in parse_records(Transaction, self._collection.read(), TRANSACTIONS_KEY)]
        if status is not None:
            wanted = TransactionStatus(status)
            records = [tx for tx in records if tx.status == wanted]
        if user is not None:
            records = [tx for tx in records if belongs_to(tx, user)]
        return records

    def get(self, tx_id: str) -> Optional[Transaction]:
        for tx in self.list():
            if tx.id == tx_id:
                return tx
        return None

    def pending_for(self, user: UserRef) -> List[Transaction]:
        return self.list(status=TransactionStatus.PENDING, user=user)

    def record_pending(
        self,
        user: User,
        plan: SubscriptionPlan,
        amount: Union[int, float],
        now: Optional[datetime] = None,
    ) -> Transaction:
        """Prepend a pending transaction for user."""
        created_at = _normalize_now(now)
        with self._collection.mutate() as items:
            taken = {tx.id for _, tx in parse_records(Transaction, items, TRANSACTIONS_KEY)}
            base_id = f"tx_{int(created_at.timestamp() * 1000)}"
            tx_id = base_id
            suffix = 1
            while tx_id in taken:
                tx_id = f"{base_id}_{suffix}"
                suffix += 1

            tx = Transaction(
                id=tx_id,
                user_id=user.id or "",
                user_name=user.name,
                user_email=user.email,
                plan=plan,
                amount=amount,
                date=created_at,
                status=TransactionStatus.PENDING,
            )
            items.insert(0, dump_record(tx))

        logger.info(
            "[ledger] recorded pending transaction",
            extra={"tx_id": tx.id, "user_ref": user.ref.describe(), "plan": plan, "amount": amount},
        )
        return tx

    def transition(self, tx_id: str, status: Union[TransactionStatus, str]) -> Optional[Transaction]:
        """
        Move a pending transaction to a terminal status.

        Returns the updated transaction, or None when tx_id is unknown or the
        transaction is no longer pending. Other records are never touched.
        """
        target = TransactionStatus(status)
        if target == TransactionStatus.PENDING:
            raise ValidationError("Transactions cannot transition back to pending")

        with self._collection.mutate() as items:
            for index, tx in parse_records(Transaction, items, TRANSACTIONS_KEY):
                if tx.id != tx_id:
                    continue
                if not tx.is_pending:
                    logger.info(
                        "[ledger] transition ignored, transaction already terminal",
                        extra={"tx_id": tx_id, "status": tx.status.value, "requested": target.value},
                    )
                    return None
                updated = tx.model_copy(update={"status": target})
                items[index] = dump_record(updated)
                return updated

        logger.info("[ledger] transition ignored, unknown transaction", extra={"tx_id": tx_id})
        return None
