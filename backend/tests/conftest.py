"""Shared test fixtures for TaskPilot backend tests."""

import os
import sys

import pytest

# Ensure backend is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")
os.environ.setdefault("SEED_ON_STARTUP", "false")

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from taskpilot.api.health import router as health_router
from taskpilot.api.v1 import chat as chat_module
from taskpilot.api.v1.categories import router as categories_router
from taskpilot.api.v1.conversations import router as conversations_router
from taskpilot.api.v1.projects import router as projects_router
from taskpilot.api.v1.tasks import router as tasks_router
from taskpilot.db.database import get_session
from taskpilot.engines.completion import CompletionAggregator
from taskpilot.models import messages, tracker  # noqa: F401
from taskpilot.storage.store import TrackerStore


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite per test. StaticPool shares one connection
    so create_all and every session see the same database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine):
    with Session(db_engine) as s:
        yield s


@pytest.fixture
def store(session):
    return TrackerStore(session)


@pytest.fixture
def aggregator(store):
    return CompletionAggregator(store)


@pytest.fixture
def api_app(db_engine):
    """Bare FastAPI app with every router and the test database wired in."""
    app = FastAPI()
    for router in (
        health_router,
        categories_router,
        projects_router,
        tasks_router,
        conversations_router,
        chat_module.router,
    ):
        app.include_router(router)

    def override_get_session():
        with Session(db_engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session
    yield app
    chat_module.set_llm(None)


@pytest.fixture
def client(api_app) -> TestClient:
    return TestClient(api_app)
