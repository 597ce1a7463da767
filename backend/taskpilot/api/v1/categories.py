"""Categories CRUD API.

GET    /api/v1/categories          — List categories (creation order)
POST   /api/v1/categories          — Create category
PATCH  /api/v1/categories/{id}     — Update name / color
DELETE /api/v1/categories/{id}     — Delete category, detach its projects
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from taskpilot.db.database import get_session
from taskpilot.models.tracker import Category
from taskpilot.storage.store import TrackerStore

router = APIRouter(prefix="/api/v1", tags=["categories"])

_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class CategoryCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str | None = Field(default=None, pattern=_COLOR_PATTERN)


class CategoryUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    color: str | None = Field(default=None, pattern=_COLOR_PATTERN)


class CategoryResponse(BaseModel):
    id: str
    name: str
    color: str
    created_at: datetime


def category_response(category: Category) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        color=category.color,
        created_at=category.created_at,
    )


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(session: Session = Depends(get_session)) -> list[CategoryResponse]:
    return [category_response(c) for c in TrackerStore(session).list_categories()]


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(
    body: CategoryCreateRequest,
    session: Session = Depends(get_session),
) -> CategoryResponse:
    category = TrackerStore(session).create_category(name=body.name, color=body.color)
    return category_response(category)


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: str,
    body: CategoryUpdateRequest,
    session: Session = Depends(get_session),
) -> CategoryResponse:
    updates = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    category = TrackerStore(session).update_category(category_id, **updates)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return category_response(category)


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: str,
    session: Session = Depends(get_session),
) -> None:
    if not TrackerStore(session).delete_category(category_id):
        raise HTTPException(status_code=404, detail="Category not found")
