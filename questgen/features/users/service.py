"""
User repository.
- resolve_user(identifier): the one id-or-email matcher used for every mutation
- update_matching(identifier, mutate): read-modify-write of matching records
- normalize_legacy_user(): fill subscription defaults on old records
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from questgen.core.errors import ValidationError
from questgen.core.store import (
    KeyValueStore,
    JsonCollection,
    USERS_KEY,
    parse_records,
    dump_record,
)
from questgen.models.user import User, UserRef


logger = logging.getLogger(__name__)

UserIdentifier = Union[UserRef, User, str]


def as_ref(identifier: UserIdentifier) -> UserRef:
    """Turn a User, UserRef, id or email into a UserRef."""
    if isinstance(identifier, UserRef):
        return identifier
    if isinstance(identifier, User):
        return identifier.ref
    if isinstance(identifier, str) and identifier:
        if "@" in identifier:
            return UserRef(email=identifier)
        return UserRef(user_id=identifier)
    raise ValidationError("User identifier is empty")


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def matches(record: User, ref: UserRef) -> bool:
    """
    Does a stored record belong to ref?

    Records with an id match by id only. Records without an id (legacy)
    match by email, as do references that carry no id.
    """
    if ref.user_id and record.id:
        return record.id == ref.user_id
    return _same_email(record.email, ref.email)


def normalize_legacy_user(raw: Dict[str, Any]) -> User:
    """Parse a stored/submitted user, defaulting missing subscription fields."""
    return User.model_validate(raw)


class UserRepository:
    """Users collection over the key-value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._collection = JsonCollection(store, USERS_KEY)

    def list(self) -> List[User]:
        return [user for _, user in parse_records(User, self._collection.read(), USERS_KEY)]

    def resolve_user(self, identifier: UserIdentifier) -> Optional[User]:
        ref = as_ref(identifier)
        for user in self.list():
            if matches(user, ref):
                return user
        return None

    def get(self, user_id: str) -> Optional[User]:
        return self.resolve_user(UserRef(user_id=user_id))

    def save(self, user: User) -> User:
        """Insert user, or replace every record that resolves to it."""
        with self._collection.mutate() as items:
            replaced = False
            for index, existing in parse_records(User, items, USERS_KEY):
                if matches(existing, user.ref):
                    items[index] = dump_record(user)
                    replaced = True
            if not replaced:
                items.append(dump_record(user))
        return user

    def update_matching(
        self,
        identifier: UserIdentifier,
        mutate: Callable[[User], User],
    ) -> List[User]:
        """
        Apply mutate to every record resolving to identifier in one
        read-modify-write. Returns the updated users (empty if none matched).
        """
        ref = as_ref(identifier)
        updated: List[User] = []
        with self._collection.mutate() as items:
            for index, existing in parse_records(User, items, USERS_KEY):
                if matches(existing, ref):
                    changed = mutate(existing)
                    items[index] = dump_record(changed)
                    updated.append(changed)
        if not updated:
            logger.warning(
                "[users] no record matched",
                extra={"user_ref": ref.describe()},
            )
        elif len(updated) > 1:
            logger.warning(
                "[users] identifier matched several records",
                extra={"user_ref": ref.describe(), "matched": len(updated)},
            )
        return updated
