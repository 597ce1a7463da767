"""Completion Aggregator — keeps derived percentages consistent.

A project's percent_complete is the rounded mean of its root tasks; a
parent task's percent_complete is the rounded mean of its direct children
and is pushed upward through every ancestor. Only leaf tasks carry
authoritative percentages.

Rounding is half-up on the exact mean (62.5 → 63, 62.4 → 62), computed in
integer arithmetic so there is no float drift.

Missing ids are a silent no-op: the aggregator may run after a deletion
and only fixes up whatever still exists.
"""

from __future__ import annotations

import logging

from taskpilot.models.tracker import STATUS_COMPLETED, STATUS_IN_PROGRESS, Task
from taskpilot.storage.store import TrackerStore

logger = logging.getLogger(__name__)


def round_percent(total: int, count: int) -> int:
    """Mean of ``count`` percentages summing to ``total``, rounded half-up."""
    if count <= 0:
        return 0
    return (2 * total + count) // (2 * count)


def mean_percent(values: list[int]) -> int:
    return round_percent(sum(values), len(values))


class CompletionAggregator:
    """Recomputes project and parent-task aggregates through a TrackerStore."""

    def __init__(self, store: TrackerStore) -> None:
        self.store = store

    def recalc_project(self, project_id: str) -> int | None:
        """Set a project's percent_complete from its root tasks.

        Zero root tasks means 0. The value is persisted even if unchanged.
        Returns the new value, or None when the project does not exist.
        """
        project = self.store.get_project(project_id)
        if project is None:
            return None
        roots = [t for t in self.store.get_tasks_by_project(project_id) if t.parent_task_id is None]
        percent = mean_percent([t.percent_complete for t in roots])
        self.store.update_project(project_id, percent_complete=percent)
        return percent

    def _recalc_one(self, task: Task) -> bool:
        """Recompute a single task from its children. False for a leaf."""
        children = self.store.get_children(task.id)
        if not children:
            return False
        avg = mean_percent([c.percent_complete for c in children])
        if avg == 100:
            status = STATUS_COMPLETED
        elif avg > 0:
            status = STATUS_IN_PROGRESS
        else:
            # Keep a manually chosen status such as "blocked"
            status = task.status
        self.store.update_task(
            task.id,
            percent_complete=avg,
            is_completed=avg == 100,
            status=status,
        )
        return True

    def recalc_parent(self, task_id: str | None) -> int:
        """Recompute ``task_id`` from its children, then each ancestor above it.

        A missing or childless task stops the walk (a leaf's percentage is
        authoritative and never overwritten). Never touches the project.
        Returns the number of tasks recomputed.
        """
        updated = 0
        seen: set[str] = set()
        current_id = task_id
        while current_id is not None:
            if current_id in seen:
                logger.warning("Parent cycle detected at task %s; stopped aggregation", current_id)
                break
            seen.add(current_id)
            task = self.store.get_task(current_id)
            if task is None or not self._recalc_one(task):
                break
            updated += 1
            current_id = task.parent_task_id
        return updated

    def cascade(self, task: Task) -> None:
        """Run the full follow-up for a created or updated task.

        A task with children has a derived percentage, so the walk starts at
        the task itself; a leaf starts at its parent. The project aggregate
        is always refreshed afterwards.
        """
        project_id = task.project_id
        if self.store.get_children(task.id):
            self.recalc_parent(task.id)
        elif task.parent_task_id is not None:
            self.recalc_parent(task.parent_task_id)
        self.recalc_project(project_id)

    def cascade_after_delete(self, project_id: str, parent_task_id: str | None) -> None:
        """Follow-up after a subtree deletion under ``parent_task_id``."""
        if parent_task_id is not None:
            self.recalc_parent(parent_task_id)
        self.recalc_project(project_id)

    def recalc_all(self, project_id: str) -> None:
        """Recompute every parent task of a project bottom-up, then the project."""
        tasks = self.store.get_tasks_by_project(project_id)
        parent_ids = {t.parent_task_id for t in tasks if t.parent_task_id is not None}
        by_id = {t.id: t for t in tasks}

        def depth(task_id: str) -> int:
            d, seen = 0, set()
            current = by_id.get(task_id)
            while current is not None and current.parent_task_id and current.id not in seen:
                seen.add(current.id)
                d += 1
                current = by_id.get(current.parent_task_id)
            return d

        for parent_id in sorted(parent_ids, key=depth, reverse=True):
            task = self.store.get_task(parent_id)
            if task is not None:
                self._recalc_one(task)
        self.recalc_project(project_id)
