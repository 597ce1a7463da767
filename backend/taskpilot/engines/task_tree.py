"""Task Tree Builder — nests a project's flat task list into a forest.

Pure functions, no store access. Siblings are ordered by ``sort_order``
with ties kept in input order. Tasks whose ``parent_task_id`` points
outside the given set are orphans: they are left out of the forest and
reported with a warning.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterator, Sequence
from datetime import datetime

from pydantic import BaseModel, Field

from taskpilot.models.tracker import Task

logger = logging.getLogger(__name__)


class TaskNode(BaseModel):
    """A task plus its nested children."""

    id: str
    project_id: str
    parent_task_id: str | None
    name: str
    description: str | None = None
    percent_complete: int = 0
    is_completed: bool = False
    status: str = "pending"
    roadblocks: str | None = None
    ai_suggestions: str | None = None
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    children: list[TaskNode] = Field(default_factory=list)

    @classmethod
    def from_task(cls, task: Task) -> TaskNode:
        return cls(
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


def find_orphans(tasks: Sequence[Task]) -> list[Task]:
    """Tasks whose parent is not part of ``tasks``."""
    ids = {t.id for t in tasks}
    return [t for t in tasks if t.parent_task_id is not None and t.parent_task_id not in ids]


def build_task_tree(tasks: Sequence[Task], parent_id: str | None = None) -> list[TaskNode]:
    """Build the forest of tasks below ``parent_id`` (``None`` = project roots).

    The children index is built once, so the whole build is linear in the
    number of tasks (plus sibling sorting) and does not recurse.
    """
    if not tasks:
        return []

    orphans = find_orphans(tasks)
    if orphans:
        logger.warning(
            "Dropping %d orphaned task(s) from tree: %s",
            len(orphans),
            ", ".join(t.id for t in orphans),
        )

    children_of: dict[str | None, list[Task]] = defaultdict(list)
    for task in tasks:
        children_of[task.parent_task_id].append(task)

    def _ordered(key: str | None) -> list[Task]:
        # sorted() is stable, so equal sort_order keeps input order
        return sorted(children_of.get(key, []), key=lambda t: t.sort_order)

    forest = [TaskNode.from_task(t) for t in _ordered(parent_id)]
    visited: set[str] = {node.id for node in forest}
    stack = list(forest)
    while stack:
        node = stack.pop()
        for child in _ordered(node.id):
            if child.id in visited:
                continue
            visited.add(child.id)
            child_node = TaskNode.from_task(child)
            node.children.append(child_node)
            stack.append(child_node)
    return forest


def iter_task_tree(forest: Sequence[TaskNode]) -> Iterator[tuple[TaskNode, int]]:
    """Yield ``(node, depth)`` in depth-first pre-order."""
    stack: list[tuple[TaskNode, int]] = [(node, 0) for node in reversed(forest)]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        stack.extend((child, depth + 1) for child in reversed(node.children))

