# questgen/conftest.py
from datetime import datetime, timezone

import pytest

from questgen.core.store import InMemoryKeyValueStore
from questgen.features.billing.ledger import TransactionLedger
from questgen.features.billing.service import SubscriptionLifecycle
from questgen.features.papers.service import PaperArchive
from questgen.features.users.service import UserRepository
from questgen.models.paper import BlueprintItem, QuestionType
from questgen.models.user import User
from questgen.tests.mocks import FakeGenerator, RecordingNotifier


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def users(store):
    return UserRepository(store)


@pytest.fixture
def ledger(store):
    return TransactionLedger(store)


@pytest.fixture
def archive(store):
    return PaperArchive(store)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def lifecycle(users, ledger, notifier, now):
    return SubscriptionLifecycle(users, ledger, notifier, clock=lambda: now)


@pytest.fixture
def make_user(users):
    """Create and store a user; keyword args override the defaults."""
    counter = {"n": 0}

    def _make(**overrides) -> User:
        counter["n"] += 1
        data = {
            "id": f"u{counter['n']}",
            "name": f"Teacher {counter['n']}",
            "email": f"teacher{counter['n']}@school.test",
            "school_name": "Springfield High",
        }
        data.update(overrides)
        return users.save(User(**data))

    return _make


@pytest.fixture
def blueprint():
    return [
        BlueprintItem(id="bp1", chapter="Real Numbers", type=QuestionType.MCQ, count=2, marks_per_question=1),
        BlueprintItem(id="bp2", chapter="Polynomials", type=QuestionType.SA, count=1, marks_per_question=3),
    ]


@pytest.fixture
def client(store, notifier, generator, now):
    """TestClient wired to the in-memory store and fakes."""
    from fastapi.testclient import TestClient
    from questgen.main import app
    from questgen.api import dependencies

    app.dependency_overrides[dependencies.get_store] = lambda: store
    app.dependency_overrides[dependencies.get_notifier] = lambda: notifier
    app.dependency_overrides[dependencies.get_content_generator] = lambda: generator
    app.dependency_overrides[dependencies.get_clock] = lambda: (lambda: now)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
