# =============================================================================
# BondQuest API — FastAPI Application Entry Point
# =============================================================================
#
# Run locally:
#   uvicorn bondquest.main:app --reload
#
# Every router is mounted under /api. Error bodies:
#   - HTTPException           → {"detail": "..."} (FastAPI default)
#   - RequestValidationError  → 400 {"message": "Invalid request", "errors": [...]}
#   - anything unhandled      → 500 {"message": "Internal server error"}
#
# DESIGN DECISION: Validation failures are 400 rather than FastAPI's 422,
# which is what the mobile and web clients already handle.
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bondquest.api import (
    admin,
    affiliates,
    auth,
    bond,
    chats,
    competitions,
    conversations,
    couples,
    quizzes,
    rewards,
    subscriptions,
    users,
)
from bondquest.api.middleware import RequestLoggingMiddleware
from bondquest.config import settings
from bondquest.db.engine import async_engine
from bondquest.models.responses import HealthResponse

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    yield
    logger.info("Shutting down %s", settings.app_name)
    await async_engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description=(
        "Relationship coaching for couples: compatibility quizzes, bond "
        "analytics, AI companions, competitions and rewards."
    ),
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s",
        request.method, request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)


for module in (
    auth,
    users,
    couples,
    quizzes,
    chats,
    bond,
    conversations,
    competitions,
    rewards,
    subscriptions,
    affiliates,
    admin,
):
    app.include_router(module.router, prefix="/api")
