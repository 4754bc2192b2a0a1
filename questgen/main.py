import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from questgen.core.config import settings, validate_config
from questgen.core.logging import configure_logging
from questgen.core.middleware.request_id import RequestIdMiddleware
from questgen.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from questgen.api import admin_billing, health, papers, session, subscriptions

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("questgen")
    logger.info("Starting QuestGen backend...", extra={"store_backend": settings.STORE_BACKEND})
    try:
        yield
    finally:
        logging.getLogger("questgen").info("Stopping QuestGen backend...")


app = FastAPI(title="QuestGen - Backend", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(health.router)
app.include_router(session.router)
app.include_router(subscriptions.router)
app.include_router(admin_billing.router)
app.include_router(papers.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("questgen.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
