"""
questgen/features/usage/service.py

Usage accounting.

Handles:
- Per-user paper counter (increment / reset)
- Persisting the increment after a successful generation
"""

import logging
from typing import Optional

from questgen.features.users.service import UserRepository
from questgen.models.user import User


logger = logging.getLogger(__name__)


def increment(user: User) -> User:
    """Return a copy of user with one more paper generated."""
    return user.model_copy(update={"papers_generated": (user.papers_generated or 0) + 1})


def reset_on_plan_change(user: User) -> User:
    """Return a copy of user with the counter reset (plan approval only)."""
    return user.model_copy(update={"papers_generated": 0})


def record_generation(users: UserRepository, user: User) -> User:
    """
    Persist one generated paper for user.

    Call exactly once per successful generation, after the generator returned
    questions and before the paper is archived.

    Returns:
        The updated user as stored (or the in-memory increment when the user
        has no stored record, e.g. a bootstrap admin).
    """
    updated = users.update_matching(user.ref, increment)
    stored: Optional[User] = updated[0] if updated else None
    result = stored or increment(user)
    logger.info(
        "[usage] paper generated",
        extra={
            "user_ref": user.ref.describe(),
            "plan": result.subscription_plan,
            "papers_generated": result.papers_generated,
        },
    )
    return result
