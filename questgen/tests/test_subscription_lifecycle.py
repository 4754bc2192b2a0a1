"""
Tests for the subscription lifecycle: request -> pending -> approve | reject.
"""
from datetime import timedelta

import pytest

from questgen.core.errors import ValidationError
from questgen.features.entitlements.service import EntitlementReason, can_generate
from questgen.features.notifications.service import NotificationKind
from questgen.models.transaction import TransactionStatus
from questgen.models.user import User


def test_request_upgrade_records_pending(lifecycle, ledger, users, make_user, now):
    """Payment is recorded pending and generation is blocked until decided."""
    user = make_user(subscription_plan="free", papers_generated=0)

    tx = lifecycle.request_upgrade(user, "monthly", 199)

    assert tx.status == TransactionStatus.PENDING
    assert tx.plan == "monthly"
    assert tx.amount == 199
    assert tx.user_id == user.id
    assert tx.date == now
    assert ledger.list()[0].id == tx.id

    stored = users.get(user.id)
    assert stored.pending_subscription_plan == "monthly"
    assert stored.subscription_plan == "free"
    assert stored.papers_generated == 0
    assert can_generate(stored, now).reason == EntitlementReason.UPGRADE_PENDING


def test_approve_applies_plan(lifecycle, users, notifier, make_user, now):
    user = make_user(subscription_plan="free", papers_generated=1)
    tx = lifecycle.request_upgrade(user, "monthly", 199)

    result = lifecycle.approve(tx.id)

    assert result.applied
    assert result.transaction.status == TransactionStatus.SUCCESS
    stored = users.get(user.id)
    assert stored.subscription_plan == "monthly"
    assert stored.pending_subscription_plan is None
    assert stored.papers_generated == 0
    assert stored.subscription_expiry == now + timedelta(days=30)
    assert notifier.kinds() == [NotificationKind.UPGRADE]
    _, notified_user, extra = notifier.sent[0]
    assert notified_user.id == user.id
    assert extra["plan"] == "monthly"


def test_yearly_approval_sets_year_expiry(lifecycle, users, make_user, now):
    user = make_user()
    tx = lifecycle.request_upgrade(user, "yearly", 1999)
    lifecycle.approve(tx.id)
    assert users.get(user.id).subscription_expiry == now + timedelta(days=365)


def test_approve_unblocks_previously_blocked_user(lifecycle, users, make_user, now):
    """A user at the monthly limit can generate right after approval."""
    user = make_user(subscription_plan="monthly", papers_generated=5, subscription_expiry=now + timedelta(days=3))
    assert not can_generate(user, now).allowed

    tx = lifecycle.request_upgrade(user, "monthly", 199)
    lifecycle.approve(tx.id)

    assert can_generate(users.get(user.id), now).allowed


def test_approve_twice_is_noop(lifecycle, users, ledger, notifier, make_user):
    user = make_user()
    tx = lifecycle.request_upgrade(user, "monthly", 199)
    lifecycle.approve(tx.id)
    after_first = users.get(user.id)
    ledger_after_first = ledger.list()

    second = lifecycle.approve(tx.id)

    assert not second.applied
    assert second.reason == "not_found"
    assert users.get(user.id) == after_first
    assert ledger.list() == ledger_after_first
    assert len(notifier.sent) == 1


def test_approve_unknown_transaction_is_noop(lifecycle, users, make_user, notifier):
    user = make_user()
    result = lifecycle.approve("tx_missing")
    assert not result.applied
    assert users.get(user.id) == user
    assert notifier.sent == []


def test_reject_only_clears_pending(lifecycle, users, ledger, notifier, make_user, now):
    """Reject never touches plan, expiry or usage."""
    expiry = now + timedelta(days=12)
    user = make_user(subscription_plan="monthly", papers_generated=3, subscription_expiry=expiry)
    tx = lifecycle.request_upgrade(user, "yearly", 1999)

    result = lifecycle.reject(tx.id)

    assert result.applied
    stored = users.get(user.id)
    assert stored.pending_subscription_plan is None
    assert stored.subscription_plan == "monthly"
    assert stored.subscription_expiry == expiry
    assert stored.papers_generated == 3
    assert ledger.get(tx.id).status == TransactionStatus.REJECTED
    assert notifier.sent == []


def test_reject_after_approve_is_noop(lifecycle, users, ledger, make_user):
    user = make_user()
    tx = lifecycle.request_upgrade(user, "monthly", 199)
    lifecycle.approve(tx.id)

    assert not lifecycle.reject(tx.id).applied
    assert ledger.get(tx.id).status == TransactionStatus.SUCCESS
    assert users.get(user.id).subscription_plan == "monthly"


def test_mark_failed_clears_pending(lifecycle, users, ledger, make_user):
    user = make_user()
    tx = lifecycle.request_upgrade(user, "monthly", 199)
    lifecycle.mark_failed(tx.id)
    assert ledger.get(tx.id).status == TransactionStatus.FAILED
    assert users.get(user.id).pending_subscription_plan is None


@pytest.mark.parametrize("plan,amount", [("free", 0), ("monthly", -1)])
def test_request_upgrade_rejects_bad_input(lifecycle, make_user, plan, amount):
    with pytest.raises(ValidationError):
        lifecycle.request_upgrade(make_user(), plan, amount)


def test_repeated_request_replaces_pending_plan(lifecycle, users, ledger, make_user, caplog):
    """Second request wins; the first transaction stays pending for the admin."""
    user = make_user()
    first = lifecycle.request_upgrade(user, "monthly", 199)
    with caplog.at_level("WARNING"):
        second = lifecycle.request_upgrade(users.get(user.id), "yearly", 1999)

    assert first.id != second.id
    assert users.get(user.id).pending_subscription_plan == "yearly"
    pending_ids = {tx.id for tx in ledger.pending_for(user.ref)}
    assert pending_ids == {first.id, second.id}
    assert any("supersedes pending plan" in r.getMessage() for r in caplog.records)

    # the stale request can still be rejected without disturbing the live one
    lifecycle.reject(first.id)
    assert users.get(user.id).pending_subscription_plan is None


def test_legacy_user_matched_by_email(lifecycle, users, store, now):
    """Users stored before ids existed are resolved by email."""
    users.save(User(email="Legacy@School.test", name="Legacy", papers_generated=1))
    legacy = users.resolve_user("legacy@school.test")
    assert legacy.id is None

    tx = lifecycle.request_upgrade(legacy, "monthly", 199)
    assert tx.user_id == ""
    lifecycle.approve(tx.id)

    stored = users.resolve_user("legacy@school.test")
    assert stored.subscription_plan == "monthly"
    assert stored.papers_generated == 0


def test_email_collision_does_not_cross_accounts(lifecycle, users, make_user):
    """Two accounts sharing an email: approval only touches the owner by id."""
    owner = make_user(email="shared@school.test")
    other = make_user(email="shared@school.test")

    tx = lifecycle.request_upgrade(owner, "yearly", 1999)
    result = lifecycle.approve(tx.id)

    assert [u.id for u in result.users] == [owner.id]
    assert users.get(owner.id).subscription_plan == "yearly"
    assert users.get(other.id).subscription_plan == "free"
