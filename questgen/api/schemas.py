"""Request/response helpers shared by the routers."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from questgen.features.entitlements.service import EntitlementDecision
from questgen.models.paper import BlueprintItem, PaperHeader
from questgen.models.user import SubscriptionPlan, User


class UpgradeRequest(BaseModel):
    """Teacher submitted a payment for a plan."""
    plan: SubscriptionPlan
    amount: Union[int, float] = Field(..., ge=0)


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    blueprint: List[BlueprintItem]
    class_level: str
    subject: str
    header: Optional[PaperHeader] = None


def public_user(user: User) -> Dict[str, Any]:
    """User as stored, minus unknown extras such as credentials."""
    return user.model_dump(mode="json", by_alias=True, include=set(User.model_fields))


def decision_payload(decision: EntitlementDecision) -> Dict[str, Any]:
    return {
        "status": decision.status.value,
        "reason": decision.reason.value if decision.reason else None,
        "message": decision.message,
        "prompt_upgrade": decision.prompt_upgrade,
        "plan": decision.plan,
        "limit": decision.limit,
        "current_usage": decision.current_usage,
        "remaining": decision.remaining,
    }
