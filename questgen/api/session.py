"""
Session API routes.

- POST /v1/session/login: sign the caller in; sends the expiry warning or
  expired notice and reports whether the upgrade prompt should show
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends

from questgen.api.dependencies import get_current_user, get_now, get_session
from questgen.api.schemas import decision_payload, public_user
from questgen.features.entitlements.service import can_generate
from questgen.features.session.service import AppSession
from questgen.models.user import User


router = APIRouter(prefix="/v1/session", tags=["session"])


@router.post("/login")
def login(
    user: User = Depends(get_current_user),
    session: AppSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    outcome = session.login(user)
    return {
        "user": public_user(outcome.user),
        "prompt_upgrade": outcome.prompt_upgrade,
        "notice": outcome.notice.value if outcome.notice else None,
        "can_generate": decision_payload(can_generate(outcome.user, now)),
    }
