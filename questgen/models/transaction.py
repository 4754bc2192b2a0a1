"""
questgen/models/transaction.py

Payment / upgrade request records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Union
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from questgen.models.user import SubscriptionPlan, UserRef


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset(
    {TransactionStatus.SUCCESS, TransactionStatus.REJECTED, TransactionStatus.FAILED}
)


class Transaction(BaseModel):
    """
    Transaction is created pending by a payment submission.

    Status only moves pending -> success | rejected | failed; a terminal
    transaction never goes back to pending.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=False,
    )

    id: str
    # user id and email are both kept; legacy users have no id
    user_id: str = ""
    user_name: str = ""
    user_email: str = ""
    plan: SubscriptionPlan
    amount: Union[int, float]
    date: datetime
    status: TransactionStatus = TransactionStatus.PENDING

    @field_validator("date")
    @classmethod
    def _aware_date(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def user_ref(self) -> UserRef:
        return UserRef(user_id=self.user_id or None, email=self.user_email or None)

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING
