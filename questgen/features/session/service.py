"""
Application session.

One signed-in user and the paper currently on screen. The cached user is
re-read from the repository after every mutating call; it is never assumed
to match the store between calls.

States:
    SIGNED_OUT --login--> IDLE
    IDLE | EDITING | VIEWING_ARCHIVE --load_paper--> LOADING_PAPER --> VIEWING_ARCHIVE
                                                     (back to the previous state on failure)
    IDLE | EDITING | VIEWING_ARCHIVE --generate_paper--> EDITING
    any --logout--> SIGNED_OUT
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from questgen.core.errors import ConflictError, PermissionError
from questgen.features.billing.expiry import DEFAULT_WARNING_DAYS, dispatch_expiry_notices
from questgen.features.billing.service import Clock, LifecycleResult, SubscriptionLifecycle, utc_now
from questgen.features.curriculum.service import load_curriculum, resolve_context
from questgen.features.entitlements.service import EntitlementDecision, can_download_or_edit
from questgen.features.notifications.service import NotificationKind
from questgen.features.papers.generator import ContentGenerator
from questgen.features.papers.service import (
    GenerationOutcome,
    GenerationStatus,
    LoadedPaper,
    PaperArchive,
    generate_paper,
)
from questgen.features.users.service import UserRepository, normalize_legacy_user
from questgen.models.paper import BlueprintItem, PaperHeader
from questgen.models.transaction import Transaction
from questgen.models.user import SubscriptionPlan, User


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    SIGNED_OUT = "signed_out"
    IDLE = "idle"
    LOADING_PAPER = "loading_paper"
    VIEWING_ARCHIVE = "viewing_archive"
    EDITING = "editing"


@dataclass(frozen=True)
class LoginOutcome:
    user: User
    prompt_upgrade: bool = False
    notice: Optional[NotificationKind] = None


class AppSession:
    def __init__(
        self,
        users: UserRepository,
        lifecycle: SubscriptionLifecycle,
        archive: PaperArchive,
        generator: ContentGenerator,
        clock: Optional[Clock] = None,
        warning_days: int = DEFAULT_WARNING_DAYS,
    ):
        self.users = users
        self.lifecycle = lifecycle
        self.archive = archive
        self.generator = generator
        self.clock = clock or utc_now
        self.warning_days = warning_days

        self.user: Optional[User] = None
        self.state = SessionState.SIGNED_OUT
        self.paper: Optional[LoadedPaper] = None
        self.last_generation: Optional[GenerationOutcome] = None

    def _now(self) -> datetime:
        return self.clock()

    def _require_user(self) -> User:
        if self.user is None:
            raise PermissionError("Not signed in")
        return self.user

    def _require_admin(self) -> User:
        user = self._require_user()
        if not user.is_admin:
            raise PermissionError("Admin access required")
        return user

    def login(self, user: Union[User, Dict[str, Any]]) -> LoginOutcome:
        """Sign user in, normalizing legacy records and sending expiry notices."""
        candidate = user if isinstance(user, User) else normalize_legacy_user(user)
        stored = self.users.resolve_user(candidate.ref)
        active = (stored or candidate).model_copy(update={"is_logged_in": True})

        identity_changed = self.user is None or self.user.ref != active.ref
        self.user = active
        self.state = SessionState.IDLE
        self.paper = None
        self.last_generation = None

        notice = None
        if identity_changed:
            notice = dispatch_expiry_notices(active, self.lifecycle.notifier, self._now(), self.warning_days)

        prompt_upgrade = (
            active.role == "teacher"
            and active.subscription_plan == "free"
            and active.papers_generated >= 1
        )
        logger.info(
            "[session] login",
            extra={"user_ref": active.ref.describe(), "plan": active.subscription_plan, "prompt_upgrade": prompt_upgrade},
        )
        return LoginOutcome(user=active, prompt_upgrade=prompt_upgrade, notice=notice)

    def logout(self) -> None:
        if self.user is not None:
            logger.info("[session] logout", extra={"user_ref": self.user.ref.describe()})
        self.user = None
        self.state = SessionState.SIGNED_OUT
        self.paper = None
        self.last_generation = None

    def refresh(self) -> Optional[User]:
        """Re-read the active user from the repository."""
        if self.user is None:
            return None
        stored = self.users.resolve_user(self.user.ref)
        if stored is not None:
            self.user = stored.model_copy(update={"is_logged_in": True})
        return self.user

    def request_upgrade(self, plan: SubscriptionPlan, amount: Union[int, float]) -> Transaction:
        user = self._require_user()
        tx = self.lifecycle.request_upgrade(user, plan, amount)
        if self.refresh() is user:
            # no stored record to re-read
            self.user = user.model_copy(update={"pending_subscription_plan": plan})
        return tx

    def approve(self, tx_id: str) -> LifecycleResult:
        self._require_admin()
        result = self.lifecycle.approve(tx_id)
        self.refresh()
        return result

    def reject(self, tx_id: str) -> LifecycleResult:
        self._require_admin()
        result = self.lifecycle.reject(tx_id)
        self.refresh()
        return result

    def generate_paper(
        self,
        blueprint: List[BlueprintItem],
        class_level: str,
        subject: str,
        header: Optional[PaperHeader] = None,
    ) -> GenerationOutcome:
        user = self._require_user()
        if self.state == SessionState.LOADING_PAPER:
            raise ConflictError("A paper is still loading")

        curriculum = load_curriculum(self.users.store)
        outcome = generate_paper(
            user,
            blueprint,
            class_level,
            subject,
            context=resolve_context(curriculum, class_level, subject),
            generator=self.generator,
            users=self.users,
            archive=self.archive,
            header=header,
            now=self._now(),
        )
        if outcome.status == GenerationStatus.GENERATED:
            self.user = outcome.user
            self.refresh()
            self.paper = None
            self.last_generation = outcome
            self.state = SessionState.EDITING
        return outcome

    def load_paper(self, paper_id: str) -> LoadedPaper:
        """Open an archived paper; it is view-only unless the plan allows editing."""
        user = self._require_user()
        if self.state == SessionState.LOADING_PAPER:
            raise ConflictError("A paper is already loading")

        previous = self.state
        self.state = SessionState.LOADING_PAPER
        try:
            loaded = self.archive.load(paper_id, user)
        except Exception:
            self.state = previous
            raise

        self.paper = loaded
        self.last_generation = None
        self.state = SessionState.VIEWING_ARCHIVE
        return loaded

    def can_download_or_edit(self) -> EntitlementDecision:
        user = self._require_user()
        return can_download_or_edit(user, loaded_from_archive=self.state == SessionState.VIEWING_ARCHIVE)
