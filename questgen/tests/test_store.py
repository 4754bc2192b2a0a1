"""
Tests for the key-value store and JSON collections.
"""
import json

import pytest

from questgen.core import database
from questgen.core.store import (
    USERS_KEY,
    InMemoryKeyValueStore,
    JsonCollection,
    SqlKeyValueStore,
    build_store,
)
from questgen.features.users.service import UserRepository
from questgen.models.user import User


@pytest.fixture
def sql_store():
    database.dispose_engine()
    database.init_engine("sqlite://")
    try:
        yield SqlKeyValueStore()
    finally:
        database.dispose_engine()


def test_memory_store_roundtrip():
    store = InMemoryKeyValueStore()
    assert store.get("k") is None
    store.set("k", "v")
    assert store.get("k") == "v"


def test_sql_store_roundtrip(sql_store):
    assert sql_store.get("k") is None
    sql_store.set("k", "v1")
    sql_store.set("k", "v2")
    assert sql_store.get("k") == "v2"


def test_repository_on_sql_store(sql_store):
    users = UserRepository(sql_store)
    users.save(User(id="u1", email="a@school.test"))
    assert users.get("u1").email == "a@school.test"


def test_build_store_unknown_backend():
    with pytest.raises(ValueError):
        build_store("redis")


@pytest.mark.parametrize("raw", ["not json", '{"a": 1}', ""])
def test_unreadable_collection_reads_empty(raw):
    store = InMemoryKeyValueStore({USERS_KEY: raw})
    assert JsonCollection(store, USERS_KEY).read() == []


def test_mutate_writes_nothing_on_error():
    store = InMemoryKeyValueStore({"k": "[1]"})
    collection = JsonCollection(store, "k")
    with pytest.raises(RuntimeError):
        with collection.mutate() as items:
            items.append(2)
            raise RuntimeError("boom")
    assert store.get("k") == "[1]"


def test_corrupt_user_skipped_and_preserved():
    """A record that fails validation is hidden from reads but kept on write-back."""
    broken = {"id": "bad", "papersGenerated": "many"}
    store = InMemoryKeyValueStore({USERS_KEY: json.dumps([broken])})
    users = UserRepository(store)

    assert users.list() == []
    users.save(User(id="u1", email="a@school.test"))

    raw = json.loads(store.get(USERS_KEY))
    assert raw[0] == broken
    assert raw[1]["id"] == "u1"


def test_unknown_user_fields_survive_rewrite():
    store = InMemoryKeyValueStore(
        {USERS_KEY: json.dumps([{"id": "u1", "email": "a@school.test", "password": "secret"}])}
    )
    users = UserRepository(store)
    users.update_matching("u1", lambda u: u.model_copy(update={"papers_generated": 2}))
    raw = json.loads(store.get(USERS_KEY))[0]
    assert raw["password"] == "secret"
    assert raw["papersGenerated"] == 2
