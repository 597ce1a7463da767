"""Health check endpoint — dependency and data checks.

Checks: Anthropic key, database round-trip, assistant wiring, prompt
template. Any "error" makes the service unhealthy; any "warning" makes it
degraded.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, text
from sqlmodel import Session, select

from taskpilot.agents.assistant import PROMPTS_DIR, SYSTEM_PROMPT_FILE
from taskpilot.api.v1 import chat
from taskpilot.config import settings
from taskpilot.db.database import get_session
from taskpilot.models.tracker import Project, Task

router = APIRouter()

VERSION = "0.3.0"


class HealthStatus(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    version: str
    checks: dict[str, dict]
    dependencies: dict[str, str]  # check name → status, for the frontend badge
    timestamp: datetime


def _result(status: str, detail: str) -> dict:
    return {"status": status, "detail": detail}


def _check_llm_key() -> dict:
    key = settings.anthropic_api_key
    if not key:
        return _result("warning", "ANTHROPIC_API_KEY not set")
    return _result("ok", "test mode" if key == "test" else "API key configured")


def _check_database(session: Session) -> dict:
    try:
        session.execute(text("SELECT 1")).scalar_one()
        projects = session.exec(select(func.count()).select_from(Project)).one()
        tasks = session.exec(select(func.count()).select_from(Task)).one()
    except Exception as e:
        return _result("error", str(e)[:200])
    dialect = session.get_bind().dialect.name
    return _result("ok", f"{dialect}: {projects} projects, {tasks} tasks")


def _check_assistant() -> dict:
    if chat.is_chat_enabled():
        return _result("ok", f"model tier {settings.chat_model_tier}")
    return _result("warning", "LLM layer not initialized, chat disabled")


def _check_prompt() -> dict:
    if (PROMPTS_DIR / SYSTEM_PROMPT_FILE).is_file():
        return _result("ok", SYSTEM_PROMPT_FILE)
    return _result("error", f"{SYSTEM_PROMPT_FILE} missing")


def overall_status(checks: dict[str, dict]) -> str:
    statuses = {c["status"] for c in checks.values()}
    if "error" in statuses:
        return "unhealthy"
    if "warning" in statuses:
        return "degraded"
    return "healthy"


@router.get("/health", response_model=HealthStatus)
def health_check(session: Session = Depends(get_session)) -> HealthStatus:
    checks = {
        "llm_api": _check_llm_key(),
        "database": _check_database(session),
        "assistant": _check_assistant(),
        "prompt": _check_prompt(),
    }
    return HealthStatus(
        status=overall_status(checks),
        version=VERSION,
        checks=checks,
        dependencies={name: c["status"] for name, c in checks.items()},
        timestamp=datetime.now(timezone.utc),
    )
