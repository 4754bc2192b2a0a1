"""
FastAPI dependencies.

Wiring for the store, repositories and collaborators. Tests swap any of
these through app.dependency_overrides.

Identity: the caller is named by the X-User-Id header (id or email). Admin
routes accept an admin user or the shared X-Admin-Key.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, Header, HTTPException

from questgen.core.config import settings
from questgen.core.errors import PermissionError
from questgen.core.store import KeyValueStore, build_store
from questgen.features.billing.ledger import TransactionLedger
from questgen.features.billing.service import Clock, SubscriptionLifecycle, utc_now
from questgen.features.notifications.service import NotificationDispatcher, build_dispatcher
from questgen.features.papers.generator import ContentGenerator, GroqContentGenerator
from questgen.features.papers.service import PaperArchive
from questgen.features.session.service import AppSession
from questgen.features.users.service import UserRepository
from questgen.models.user import User


logger = logging.getLogger("questgen.api")

_store: Optional[KeyValueStore] = None


def get_store() -> KeyValueStore:
    global _store
    if _store is None:
        _store = build_store(settings.STORE_BACKEND)
        logger.info("[api] store initialized", extra={"backend": settings.STORE_BACKEND})
    return _store


def get_users(store: KeyValueStore = Depends(get_store)) -> UserRepository:
    return UserRepository(store)


def get_ledger(store: KeyValueStore = Depends(get_store)) -> TransactionLedger:
    return TransactionLedger(store)


def get_archive(store: KeyValueStore = Depends(get_store)) -> PaperArchive:
    return PaperArchive(store)


def get_notifier() -> NotificationDispatcher:
    return build_dispatcher(settings.NOTIFY_WEBHOOK_URL, settings.NOTIFY_TIMEOUT_SECONDS)


def get_clock() -> Clock:
    return utc_now


def get_now(clock: Clock = Depends(get_clock)) -> datetime:
    return clock()


def get_lifecycle(
    users: UserRepository = Depends(get_users),
    ledger: TransactionLedger = Depends(get_ledger),
    notifier: NotificationDispatcher = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> SubscriptionLifecycle:
    return SubscriptionLifecycle(users, ledger, notifier, clock=clock)


def get_content_generator() -> ContentGenerator:
    # the Groq client is created on first generate, so a missing key never blocks other checks
    return GroqContentGenerator(
        settings.GROQ_API_KEY,
        model=settings.GROQ_MODEL,
        temperature=settings.GROQ_TEMPERATURE,
        max_tokens=settings.GROQ_MAX_TOKENS,
    )


def get_session(
    users: UserRepository = Depends(get_users),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
    archive: PaperArchive = Depends(get_archive),
    generator: ContentGenerator = Depends(get_content_generator),
    clock: Clock = Depends(get_clock),
) -> AppSession:
    return AppSession(users, lifecycle, archive, generator, clock=clock, warning_days=settings.EXPIRY_WARNING_DAYS)


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    users: UserRepository = Depends(get_users),
) -> User:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = users.resolve_user(x_user_id.strip())
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_admin(
    x_user_id: Optional[str] = Header(None),
    x_admin_key: Optional[str] = Header(None),
    users: UserRepository = Depends(get_users),
) -> str:
    """Return an actor label for audit logs, or raise 403."""
    expected = settings.ADMIN_KEY
    if expected and x_admin_key and x_admin_key.strip() == expected:
        return "admin_key"

    if x_user_id and x_user_id.strip():
        user = users.resolve_user(x_user_id.strip())
        if user is not None and user.is_admin:
            return user.ref.describe()

    logger.warning(
        "[admin] access denied",
        extra={"user_ref": x_user_id or "none", "admin_key_present": bool(x_admin_key)},
    )
    raise PermissionError("Admin access required")
