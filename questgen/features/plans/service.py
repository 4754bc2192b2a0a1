"""
questgen/features/plans/service.py

Plan catalog.

Handles:
- Plan definitions (free, monthly, yearly)
- Entitlement lookup per plan
"""

from typing import Dict, Optional, Union

from questgen.models.plan import Plan


UNLIMITED = -1

# Entitlement keys:
# - papers.max (int): papers per plan period (-1 = unlimited)
# - archive.edit (bool): may download/edit papers reopened from history
PLAN_CATALOG = {
    "free": {
        "name": "Free Trial",
        "is_default": True,
        "period_days": None,
        "entitlements": {
            "papers.max": 1,
            "archive.edit": False,
        }
    },
    "monthly": {
        "name": "Monthly Plan",
        "is_default": False,
        "period_days": 30,
        "entitlements": {
            "papers.max": 5,
            "archive.edit": False,
        }
    },
    "yearly": {
        "name": "Yearly Plan",
        "is_default": False,
        "period_days": 365,
        "entitlements": {
            "papers.max": UNLIMITED,
            "archive.edit": True,
        }
    },
}

# Plans a teacher can request through a payment
PAID_PLANS = ("monthly", "yearly")


def get_plan(plan_id: str) -> Optional[Plan]:
    """Get plan by ID."""
    config = PLAN_CATALOG.get(plan_id)
    if not config:
        return None
    return Plan(
        plan_id=plan_id,
        name=config["name"],
        is_default=config["is_default"],
        period_days=config["period_days"],
    )


def get_plan_entitlements(plan_id: str) -> Dict[str, Union[int, bool]]:
    """
    Get all entitlements for a plan.

    Returns:
        Dict mapping entitlement_key to value, empty for unknown plans
    """
    config = PLAN_CATALOG.get(plan_id)
    if not config:
        return {}
    return dict(config["entitlements"])


def get_plan_entitlement(plan_id: str, entitlement_key: str) -> Optional[Union[int, bool]]:
    """Get a specific entitlement value, None if the plan or key is unknown."""
    return get_plan_entitlements(plan_id).get(entitlement_key)
