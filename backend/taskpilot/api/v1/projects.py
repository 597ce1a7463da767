"""Projects CRUD API.

GET    /api/v1/projects                 — All projects with category + task forest
GET    /api/v1/projects/{id}            — One project with category + task forest
POST   /api/v1/projects                 — Create project
PATCH  /api/v1/projects/{id}            — Partial update
DELETE /api/v1/projects/{id}            — Delete project and all its tasks
GET    /api/v1/projects/{id}/tasks      — Task forest of a project
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from taskpilot.api.v1.categories import CategoryResponse, category_response
from taskpilot.db.database import get_session
from taskpilot.engines.completion import CompletionAggregator
from taskpilot.engines.task_tree import TaskNode, build_task_tree
from taskpilot.models.tracker import Category, Project, ProjectStatus
from taskpilot.storage.store import TrackerStore

router = APIRouter(prefix="/api/v1", tags=["projects"])

_NON_NULLABLE = {"name", "status", "percent_complete"}


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    category_id: str | None = None
    status: ProjectStatus = "active"
    roadblocks: str | None = None
    ai_suggestions: str | None = None


class ProjectUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category_id: str | None = None
    status: ProjectStatus | None = None
    percent_complete: int | None = Field(default=None, ge=0, le=100)
    roadblocks: str | None = None
    ai_suggestions: str | None = None


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: str | None
    category_id: str | None
    category: CategoryResponse | None = None
    status: str
    percent_complete: int
    roadblocks: str | None
    ai_suggestions: str | None
    created_at: datetime
    updated_at: datetime
    tasks: list[TaskNode] = Field(default_factory=list)


def _to_response(
    project: Project,
    category: Category | None = None,
    tasks: list[TaskNode] | None = None,
) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        description=project.description,
        category_id=project.category_id,
        category=category_response(category) if category is not None else None,
        status=project.status,
        percent_complete=project.percent_complete,
        roadblocks=project.roadblocks,
        ai_suggestions=project.ai_suggestions,
        created_at=project.created_at,
        updated_at=project.updated_at,
        tasks=tasks or [],
    )


def _with_tasks(store: TrackerStore, project: Project) -> ProjectResponse:
    category = store.get_category(project.category_id) if project.category_id else None
    forest = build_task_tree(store.get_tasks_by_project(project.id))
    return _to_response(project, category, forest)


def _check_category(store: TrackerStore, category_id: str | None) -> None:
    if category_id is not None and store.get_category(category_id) is None:
        raise HTTPException(status_code=400, detail="Category does not exist")


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(session: Session = Depends(get_session)) -> list[ProjectResponse]:
    store = TrackerStore(session)
    return [_with_tasks(store, p) for p in store.list_projects()]


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str, session: Session = Depends(get_session)) -> ProjectResponse:
    store = TrackerStore(session)
    project = store.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return _with_tasks(store, project)


@router.get("/projects/{project_id}/tasks", response_model=list[TaskNode])
def get_project_tasks(project_id: str, session: Session = Depends(get_session)) -> list[TaskNode]:
    store = TrackerStore(session)
    if store.get_project(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return build_task_tree(store.get_tasks_by_project(project_id))


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    body: ProjectCreateRequest,
    session: Session = Depends(get_session),
) -> ProjectResponse:
    store = TrackerStore(session)
    _check_category(store, body.category_id)
    project = store.create_project(**body.model_dump())
    return _with_tasks(store, project)


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    body: ProjectUpdateRequest,
    session: Session = Depends(get_session),
) -> ProjectResponse:
    """Partial update. With root tasks present the percentage stays derived."""
    store = TrackerStore(session)
    if store.get_project(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    updates = {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k not in _NON_NULLABLE
    }
    if "category_id" in updates:
        _check_category(store, updates["category_id"])
    project = store.update_project(project_id, **updates)
    if "percent_complete" in updates and store.get_tasks_by_project(project_id):
        CompletionAggregator(store).recalc_project(project_id)
        project = store.get_project(project_id)
    return _with_tasks(store, project)


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(project_id: str, session: Session = Depends(get_session)) -> None:
    if not TrackerStore(session).delete_project(project_id):
        raise HTTPException(status_code=404, detail="Project not found")
