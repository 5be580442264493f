"""
passport.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn passport.api.main:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from passport.api.deps import get_catalog, get_engine, get_outbox  # noqa: E402
from passport.api.routes.cron import router as cron_router  # noqa: E402
from passport.api.routes.progression import router as progression_router  # noqa: E402
from passport.engine.errors import InvalidAction, TransactionFailure, UserNotFound  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the engine and catalog, drain the outbox."""
    engine = get_engine()
    get_catalog().load_all()
    outbox = get_outbox()
    outbox.start(asyncio.get_running_loop())
    logger.info("Passport API started — engine ready (%s)", engine.url.database)
    yield
    outbox.stop()
    await outbox.drain_once()
    logger.info("Passport API shutting down")


app = FastAPI(
    title="Passport Progression API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(progression_router, prefix="/api")
app.include_router(cron_router, prefix="/api")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(UserNotFound)
async def user_not_found_handler(request: Request, exc: UserNotFound):
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(InvalidAction)
async def invalid_action_handler(request: Request, exc: InvalidAction):
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(TransactionFailure)
async def transaction_failure_handler(request: Request, exc: TransactionFailure):
    logger.warning("Returning 503 for %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Progression update failed, please retry")


@app.get("/api/health")
def health():
    return {"status": "ok"}
