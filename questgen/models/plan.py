"""
questgen/models/plan.py

Plan model: a named subscription tier.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict


class Plan(BaseModel):
    """
    Plan represents a subscription tier.

    Examples:
    - free (default, one-paper trial, never expires)
    - monthly (5 papers, 30 days)
    - yearly (unlimited papers, 365 days)

    period_days is None for plans without an expiry.
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str
    name: str
    is_default: bool = False
    period_days: Optional[int] = None
