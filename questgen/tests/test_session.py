"""
Tests for the application session state machine.
"""
import json
from datetime import timedelta

import pytest

from questgen.core.errors import DataCorruptionError, PermissionError
from questgen.core.store import PAPERS_KEY
from questgen.features.notifications.service import NotificationKind
from questgen.features.papers.service import GenerationStatus
from questgen.features.session.service import AppSession, SessionState
from questgen.models.paper import GeneratedQuestion, PaperHeader, QuestionType


@pytest.fixture
def session(users, lifecycle, archive, generator, now):
    return AppSession(users, lifecycle, archive, generator, clock=lambda: now)


def test_login_enters_idle(session, make_user):
    user = make_user()
    outcome = session.login(user)
    assert session.state == SessionState.IDLE
    assert outcome.user.id == user.id
    assert outcome.prompt_upgrade is False


def test_login_prompts_spent_free_teacher(session, make_user):
    assert session.login(make_user(papers_generated=1)).prompt_upgrade is True


def test_login_normalizes_legacy_dict(session):
    outcome = session.login({"email": "old@school.test", "name": "Old", "subscriptionPlan": ""})
    assert outcome.user.subscription_plan == "free"
    assert outcome.user.papers_generated == 0


def test_login_sends_expiry_notice_once_per_identity(session, notifier, make_user, now):
    user = make_user(subscription_plan="monthly", subscription_expiry=now + timedelta(days=2))
    assert session.login(user).notice == NotificationKind.EXPIRY_WARNING
    session.login(user)
    assert notifier.kinds() == [NotificationKind.EXPIRY_WARNING]


def test_logout(session, make_user):
    session.login(make_user())
    session.logout()
    assert session.user is None
    assert session.state == SessionState.SIGNED_OUT


def test_actions_require_login(session, blueprint):
    with pytest.raises(PermissionError):
        session.generate_paper(blueprint, "Class 10", "Mathematics")


def test_request_upgrade_refreshes_cache(session, make_user):
    session.login(make_user())
    session.request_upgrade("monthly", 199)
    assert session.user.pending_subscription_plan == "monthly"


def test_teacher_cannot_approve(session, make_user):
    session.login(make_user())
    with pytest.raises(PermissionError):
        session.approve("tx_1")


def test_admin_approval_scenario(session, users, notifier, make_user, now):
    teacher = make_user()
    admin = make_user(role="admin")
    session.login(teacher)
    tx = session.request_upgrade("monthly", 199)

    session.login(admin)
    result = session.approve(tx.id)

    assert result.applied
    stored = users.get(teacher.id)
    assert stored.subscription_plan == "monthly"
    assert stored.subscription_expiry == now + timedelta(days=30)
    assert NotificationKind.UPGRADE in notifier.kinds()


def test_generate_enters_editing(session, make_user, blueprint):
    session.login(make_user())
    outcome = session.generate_paper(blueprint, "Class 10", "Mathematics")
    assert outcome.status == GenerationStatus.GENERATED
    assert session.state == SessionState.EDITING
    assert session.user.papers_generated == 1
    assert session.can_download_or_edit().allowed


def test_denied_generation_keeps_state(session, make_user, blueprint):
    session.login(make_user(papers_generated=1))
    outcome = session.generate_paper(blueprint, "Class 10", "Mathematics")
    assert outcome.status == GenerationStatus.DENIED
    assert session.state == SessionState.IDLE


def test_archived_paper_view_only_for_free(session, archive, make_user):
    user = make_user()
    question = GeneratedQuestion(id="q1", type=QuestionType.SA, marks=3, question_text="Q")
    paper = archive.save(user, [question], PaperHeader())
    session.login(user)

    session.load_paper(paper.id)

    assert session.state == SessionState.VIEWING_ARCHIVE
    decision = session.can_download_or_edit()
    assert not decision.allowed
    assert decision.message == "upgrade required"


def test_corrupt_paper_restores_previous_state(session, store, make_user):
    user = make_user()
    store.set(PAPERS_KEY, json.dumps([
        {"id": "paper_1", "userId": user.id, "createdAt": "2025-01-01T00:00:00Z", "questions": []},
    ]))
    session.login(user)

    with pytest.raises(DataCorruptionError):
        session.load_paper("paper_1")

    assert session.state == SessionState.IDLE
    assert session.paper is None


def test_unreadable_header_leaves_session_usable(session, store, make_user, blueprint, now):
    user = make_user(subscription_plan="monthly", subscription_expiry=now + timedelta(days=20))
    store.set(PAPERS_KEY, json.dumps([{
        "id": "paper_1",
        "userId": user.id,
        "createdAt": "2025-01-01T00:00:00Z",
        "header": {"classLevel": 10},
        "questions": [{"id": "q1", "type": "Short Answer", "marks": 3, "questionText": "A"}],
    }]))
    session.login(user)

    with pytest.raises(DataCorruptionError):
        session.load_paper("paper_1")

    assert session.state == SessionState.IDLE
    outcome = session.generate_paper(blueprint, "Class 10", "Mathematics")
    assert outcome.status == GenerationStatus.GENERATED
    assert session.state == SessionState.EDITING
