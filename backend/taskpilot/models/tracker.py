"""Category, Project and Task models.

Tasks form a forest per project through the nullable ``parent_task_id``
self-reference. Projects own their tasks; deleting a project deletes them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from sqlmodel import Field as SQLField
from sqlmodel import SQLModel

ProjectStatus = Literal["active", "completed", "archived"]

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"
TASK_STATUSES = frozenset({STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED})

DEFAULT_CATEGORY_COLOR = "#3B82F6"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Category(SQLModel, table=True):
    """A display grouping for projects."""

    __tablename__ = "category"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    sort_order: int = 0  # creation position, defines "first category"
    created_at: datetime = SQLField(default_factory=_now)


class Project(SQLModel, table=True):
    """A project whose percent_complete is the mean of its root tasks."""

    __tablename__ = "project"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str
    description: str | None = None
    category_id: str | None = SQLField(default=None, index=True)
    status: str = "active"  # "active" | "completed" | "archived"
    percent_complete: int = 0
    roadblocks: str | None = None
    ai_suggestions: str | None = None
    created_at: datetime = SQLField(default_factory=_now)
    updated_at: datetime = SQLField(default_factory=_now)


class Task(SQLModel, table=True):
    """A task within a project, optionally nested under a parent task."""

    __tablename__ = "task"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    project_id: str = SQLField(index=True)
    parent_task_id: str | None = SQLField(default=None, index=True)
    name: str
    description: str | None = None
    percent_complete: int = 0
    is_completed: bool = False
    status: str = STATUS_PENDING  # "pending" | "in-progress" | "completed" | custom
    roadblocks: str | None = None
    ai_suggestions: str | None = None
    sort_order: int = 0
    created_at: datetime = SQLField(default_factory=_now)
    updated_at: datetime = SQLField(default_factory=_now)


def status_for_percent(percent: int) -> str:
    """Status implied by a leaf percentage: 100 → completed, >0 → in-progress."""
    if percent >= 100:
        return STATUS_COMPLETED
    if percent > 0:
        return STATUS_IN_PROGRESS
    return STATUS_PENDING
