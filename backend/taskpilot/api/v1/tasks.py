"""Tasks CRUD API.

GET    /api/v1/tasks/{id}     — Get a task
POST   /api/v1/tasks          — Create a task (optionally under a parent)
PATCH  /api/v1/tasks/{id}     — Partial update, including re-parenting
DELETE /api/v1/tasks/{id}     — Delete a task and its whole subtree

Every mutation re-runs completion aggregation for the affected parent
chain(s) and the project.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from taskpilot.db.database import get_session
from taskpilot.engines.completion import CompletionAggregator
from taskpilot.engines.interpreter import derive_task_updates
from taskpilot.models.tracker import Task, status_for_percent
from taskpilot.storage.store import TrackerStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["tasks"])

_NON_NULLABLE = {"name", "percent_complete", "is_completed", "status", "sort_order"}


class TaskCreateRequest(BaseModel):
    project_id: str
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    parent_task_id: str | None = None
    percent_complete: int = Field(default=0, ge=0, le=100)
    status: str | None = Field(default=None, min_length=1, max_length=40)
    roadblocks: str | None = None
    ai_suggestions: str | None = None
    sort_order: int = 0


class TaskUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    parent_task_id: str | None = None
    percent_complete: int | None = Field(default=None, ge=0, le=100)
    is_completed: bool | None = None
    status: str | None = Field(default=None, min_length=1, max_length=40)
    roadblocks: str | None = None
    ai_suggestions: str | None = None
    sort_order: int | None = None


class TaskResponse(BaseModel):
    id: str
    project_id: str
    parent_task_id: str | None
    name: str
    description: str | None
    percent_complete: int
    is_completed: bool
    status: str
    roadblocks: str | None
    ai_suggestions: str | None
    sort_order: int
    created_at: datetime
    updated_at: datetime


def _to_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        project_id=task.project_id,
        parent_task_id=task.parent_task_id,
        name=task.name,
        description=task.description,
        percent_complete=task.percent_complete,
        is_completed=task.is_completed,
        status=task.status,
        roadblocks=task.roadblocks,
        ai_suggestions=task.ai_suggestions,
        sort_order=task.sort_order,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def _check_parent(store: TrackerStore, parent_task_id: str, project_id: str, task: Task | None = None) -> None:
    """Reject a parent outside the project, the task itself, or a descendant."""
    parent = store.get_task(parent_task_id)
    if parent is None:
        raise HTTPException(status_code=400, detail="Parent task does not exist")
    if parent.project_id != project_id:
        raise HTTPException(status_code=400, detail="Parent task belongs to another project")
    if task is not None:
        if parent.id == task.id:
            raise HTTPException(status_code=400, detail="A task cannot be its own parent")
        if parent.id in store.descendant_ids(task):
            raise HTTPException(status_code=400, detail="A task cannot be moved under its own subtask")


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(task_id: str, session: Session = Depends(get_session)) -> TaskResponse:
    task = TrackerStore(session).get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return _to_response(task)


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(body: TaskCreateRequest, session: Session = Depends(get_session)) -> TaskResponse:
    store = TrackerStore(session)
    if store.get_project(body.project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    if body.parent_task_id:
        _check_parent(store, body.parent_task_id, body.project_id)

    task = store.create_task(
        project_id=body.project_id,
        parent_task_id=body.parent_task_id or None,
        name=body.name,
        description=body.description,
        percent_complete=body.percent_complete,
        is_completed=body.percent_complete == 100,
        status=body.status or status_for_percent(body.percent_complete),
        roadblocks=body.roadblocks,
        ai_suggestions=body.ai_suggestions,
        sort_order=body.sort_order,
    )
    CompletionAggregator(store).cascade(task)
    session.refresh(task)
    return _to_response(task)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    body: TaskUpdateRequest,
    session: Session = Depends(get_session),
) -> TaskResponse:
    """Partial update.

    ``percent_complete`` and ``is_completed`` are kept consistent the same
    way assistant updates are; an explicit ``status`` wins over the derived
    one. A task with subtasks ignores both, since its progress is their
    mean. Moving a task re-aggregates both the old and the new parent chain.
    """
    store = TrackerStore(session)
    task = store.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")

    fields = {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k not in _NON_NULLABLE
    }
    old_parent_id = task.parent_task_id
    if "parent_task_id" in fields:
        new_parent_id = fields["parent_task_id"] or None
        fields["parent_task_id"] = new_parent_id
        if new_parent_id is not None:
            _check_parent(store, new_parent_id, task.project_id, task)

    if store.get_children(task_id):
        # Derived from the subtasks; cascade below recomputes it
        for key in ("percent_complete", "is_completed"):
            fields.pop(key, None)
    elif "percent_complete" in fields or "is_completed" in fields:
        progress = derive_task_updates(
            current_percent=task.percent_complete,
            current_status=task.status,
            percent=fields.pop("percent_complete", None),
            is_completed=fields.pop("is_completed", None),
        )
        for key, value in progress.items():
            fields.setdefault(key, value)

    updated = store.update_task(task_id, **fields)
    aggregator = CompletionAggregator(store)
    if updated.parent_task_id != old_parent_id and old_parent_id is not None:
        aggregator.recalc_parent(old_parent_id)
    aggregator.cascade(updated)
    session.refresh(updated)
    return _to_response(updated)


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, session: Session = Depends(get_session)) -> None:
    store = TrackerStore(session)
    task = store.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    project_id, parent_task_id = task.project_id, task.parent_task_id
    store.delete_task(task_id)
    CompletionAggregator(store).cascade_after_delete(project_id, parent_task_id)
