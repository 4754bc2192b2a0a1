"""
Health endpoints.

Lightweight liveness/readiness checks without exposing secrets.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from questgen.core.config import settings
from questgen.core.database import check_connection

logger = logging.getLogger("questgen")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: database connectivity when the SQL store is configured."""
    backend = (settings.STORE_BACKEND or "memory").lower()
    if backend != "sql":
        return {"status": "ok", "store": backend}
    if not check_connection():
        logger.error("[readyz] database unreachable")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
    return {"status": "ok", "store": backend}
