"""TaskPilot FastAPI Application.

Startup order: logging, tables, optional demo seed, LLM wiring. Chat is the
only feature that needs an Anthropic key; everything else runs without it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from taskpilot.api import health
from taskpilot.api.v1 import categories, chat, conversations, projects, tasks
from taskpilot.config import settings
from taskpilot.db.database import create_db_and_tables, engine
from taskpilot.logging_setup import configure_logging

logger = logging.getLogger(__name__)

ROUTERS = (
    health.router,
    categories.router,
    projects.router,
    tasks.router,
    conversations.router,
    chat.router,
)


def _init_llm() -> None:
    """Hand an LLMLayer to the chat router, or disable chat when there is no key."""
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not set. Assistant chat disabled.")
        chat.set_llm(None)
        return
    from taskpilot.llm.layer import LLMLayer

    try:
        llm = LLMLayer()
    except Exception as e:
        logger.warning("LLM init skipped (non-fatal): %s", e)
        chat.set_llm(None)
        return
    chat.set_llm(llm)
    logger.info("Assistant chat enabled (model tier %s)", settings.chat_model_tier)


def _seed_if_empty() -> None:
    from taskpilot.seed import seed_demo_data
    from taskpilot.storage.store import TrackerStore

    with Session(engine) as session:
        seed_demo_data(TrackerStore(session))


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    create_db_and_tables()
    if settings.seed_on_startup:
        try:
            _seed_if_empty()
        except Exception as e:
            logger.warning("Demo seed failed (non-fatal): %s", e)
    _init_llm()

    yield

    chat.set_llm(None)


app = FastAPI(
    title="TaskPilot",
    description="Project and task tracker with a conversational assistant",
    version=health.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the traceback; the client only sees a generic 500."""
    if isinstance(exc, HTTPException):
        raise exc
    logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error."})


for router in ROUTERS:
    app.include_router(router)


@app.get("/")
async def root():
    return {"name": "TaskPilot", "version": health.VERSION, "status": "running"}
