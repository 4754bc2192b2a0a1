"""
questgen/models/user.py

User account with subscription state.

Records are stored camelCase (subscriptionPlan, papersGenerated, ...) and
may predate the subscription fields; validators fill legacy gaps.
"""

from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


Role = Literal["teacher", "admin"]
SubscriptionPlan = Literal["free", "monthly", "yearly"]


class UserRef(BaseModel):
    """Identifies a user record by id, falling back to email for legacy records."""
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    email: Optional[str] = None

    def describe(self) -> str:
        return self.user_id or self.email or "<anonymous>"


class User(BaseModel):
    """
    User represents a teacher or admin account.

    Invariants:
    - at most one pending plan request at a time
    - papers_generated resets to 0 whenever a plan transition is approved
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="allow",
    )

    id: Optional[str] = None
    name: str = ""
    email: str
    mobile: str = ""
    school_name: str = ""
    role: Role = "teacher"
    is_logged_in: bool = False

    subscription_plan: SubscriptionPlan = "free"
    pending_subscription_plan: Optional[SubscriptionPlan] = None
    papers_generated: int = Field(default=0, ge=0)
    subscription_expiry: Optional[datetime] = None

    @field_validator("subscription_plan", mode="before")
    @classmethod
    def _default_plan(cls, value):
        return value or "free"

    @field_validator("pending_subscription_plan", mode="before")
    @classmethod
    def _blank_pending(cls, value):
        return value or None

    @field_validator("papers_generated", mode="before")
    @classmethod
    def _default_usage(cls, value):
        return value or 0

    @field_validator("subscription_expiry", mode="before")
    @classmethod
    def _blank_expiry(cls, value):
        return value or None

    @field_validator("subscription_expiry")
    @classmethod
    def _aware_expiry(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def ref(self) -> UserRef:
        return UserRef(user_id=self.id or None, email=self.email)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
