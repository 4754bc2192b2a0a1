"""
Key-value persistence for whole JSON collections.

Every collection (users, transactions, papers, curriculum) lives under a
fixed key as one JSON array. Callers always read the full array and write
the full array back; JsonCollection.mutate() serializes that
read-modify-write inside this process. Nothing here locks across processes.
"""

import json
import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, insert, update

from questgen.core.database import get_db_session, kv_entries, create_all_tables


logger = logging.getLogger(__name__)

USERS_KEY = "questgen_users"
TRANSACTIONS_KEY = "questgen_transactions"
PAPERS_KEY = "questgen_papers"
CURRICULUM_KEY = "questgen_curriculum"

ModelT = TypeVar("ModelT", bound=BaseModel)


class KeyValueStore(Protocol):
    """String key-value store (browser local storage semantics)."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store. Default for development and tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self) -> None:
        """FOR TESTING ONLY."""
        self._data.clear()


class SqlKeyValueStore:
    """kv_entries-backed store (SQLite or PostgreSQL via SQLAlchemy)."""

    def __init__(self, ensure_schema: bool = True):
        if ensure_schema:
            create_all_tables()

    def get(self, key: str) -> Optional[str]:
        with get_db_session() as session:
            row = session.execute(
                select(kv_entries.c.value).where(kv_entries.c.key == key)
            ).first()
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        with get_db_session() as session:
            existing = session.execute(
                select(kv_entries.c.key).where(kv_entries.c.key == key)
            ).first()
            if existing:
                session.execute(
                    update(kv_entries)
                    .where(kv_entries.c.key == key)
                    .values(value=value)
                )
            else:
                session.execute(insert(kv_entries).values(key=key, value=value))


def build_store(backend: str) -> KeyValueStore:
    """Build the configured store ("memory" or "sql")."""
    name = (backend or "memory").lower()
    if name == "memory":
        return InMemoryKeyValueStore()
    if name == "sql":
        return SqlKeyValueStore()
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


_store_locks: "weakref.WeakKeyDictionary[object, threading.RLock]" = weakref.WeakKeyDictionary()
_registry_lock = threading.Lock()


def _lock_for(store: KeyValueStore) -> threading.RLock:
    with _registry_lock:
        lock = _store_locks.get(store)
        if lock is None:
            lock = threading.RLock()
            _store_locks[store] = lock
        return lock


@contextmanager
def locked(store: KeyValueStore) -> Iterator[None]:
    """Hold the store's in-process lock across several collection mutations."""
    with _lock_for(store):
        yield


class JsonCollection:
    """A JSON array stored under one key."""

    def __init__(self, store: KeyValueStore, key: str):
        self.store = store
        self.key = key

    def read(self) -> List[object]:
        raw = self.store.get(self.key)
        if raw is None or raw == "":
            return []
        try:
            items = json.loads(raw)
        except (TypeError, ValueError):
            logger.error(
                "[store] unparseable collection, reading as empty",
                extra={"key": self.key},
            )
            return []
        if not isinstance(items, list):
            logger.error(
                "[store] collection is not an array, reading as empty",
                extra={"key": self.key, "found_type": type(items).__name__},
            )
            return []
        return items

    def write(self, items: List[object]) -> None:
        self.store.set(self.key, json.dumps(items))

    @contextmanager
    def mutate(self) -> Iterator[List[object]]:
        """Read the full array, let the caller edit it in place, write it back.

        Nothing is written if the block raises.
        """
        with _lock_for(self.store):
            items = self.read()
            yield items
            self.write(items)


def parse_records(model: Type[ModelT], items: List[object], key: str) -> List[Tuple[int, ModelT]]:
    """Validate raw records, returning (index, record) for the valid ones.

    Invalid records are logged and skipped; their raw form stays in the
    collection so a later write-back leaves them untouched.
    """
    parsed: List[Tuple[int, ModelT]] = []
    for index, raw in enumerate(items):
        try:
            parsed.append((index, model.model_validate(raw)))
        except PydanticValidationError as exc:
            logger.warning(
                "[store] skipping corrupt record",
                extra={"key": key, "index": index, "errors": exc.error_count()},
            )
    return parsed


def dump_record(record: BaseModel) -> dict:
    """Serialize a record the way collections store it (camelCase, no nulls)."""
    return record.model_dump(mode="json", by_alias=True, exclude_none=True)
