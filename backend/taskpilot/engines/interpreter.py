"""Action Interpreter — applies an assistant action batch to the tracker.

Actions run strictly in order and independently: a failing action is
logged and skipped, earlier effects stay committed and later actions still
run. ``NEW_PROJECT`` in ``create_task.projectId`` means "the project most
recently created in this batch", tracked in an explicit BatchState.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from taskpilot.engines.actions import (
    NEW_PROJECT_PLACEHOLDER,
    Action,
    CreateProjectAction,
    CreateTaskAction,
    UpdateProjectAction,
    UpdateTaskAction,
)
from taskpilot.engines.completion import CompletionAggregator
from taskpilot.models.tracker import STATUS_PENDING, TASK_STATUSES, Category, status_for_percent
from taskpilot.storage.store import TrackerStore

logger = logging.getLogger(__name__)


class ActionError(Exception):
    """An action that cannot be applied (unknown id, bad reference)."""


class AggregationError(Exception):
    """The action's write committed but the follow-up aggregation failed."""

    def __init__(self, entry: str) -> None:
        super().__init__(entry)
        self.entry = entry


@dataclass
class BatchState:
    """Mutable state threaded through one batch."""

    last_project_id: str | None = None


@dataclass
class BatchResult:
    """Outcome of executing one batch."""

    log: list[str] = field(default_factory=list)
    new_project_id: str | None = None
    skipped: list[str] = field(default_factory=list)

    @property
    def executed_count(self) -> int:
        return len(self.log)


def format_action_summary(log: Sequence[str]) -> str:
    """The ``[Actions completed: ...]`` prefix shown before the reply, or ''."""
    if not log:
        return ""
    return f"[Actions completed: {', '.join(log)}]\n\n"


def resolve_category_id(requested: str | None, categories: Sequence[Category]) -> str | None:
    """Pick the category for a new project.

    Omitted → first category. Unknown id → case-insensitive name match,
    else first category. No categories at all → None.
    """
    if not categories:
        return None
    first = categories[0].id
    if not requested:
        return first
    if any(c.id == requested for c in categories):
        return requested
    wanted = requested.strip().lower()
    for category in categories:
        if category.name.lower() == wanted:
            return category.id
    return first


class ActionInterpreter:
    """Executes validated actions through the store and the aggregator."""

    def __init__(self, store: TrackerStore, aggregator: CompletionAggregator | None = None) -> None:
        self.store = store
        self.aggregator = aggregator or CompletionAggregator(store)

    def execute(self, actions: Sequence[Action], categories: Sequence[Category]) -> BatchResult:
        """Apply ``actions`` in order and return the execution log."""
        state = BatchState()
        result = BatchResult()
        for index, action in enumerate(actions):
            try:
                entry = self._apply(action, categories, state)
            except AggregationError as e:
                logger.exception(
                    "Action #%d (%s) applied but aggregation failed", index, action.type
                )
                self.store.session.rollback()
                result.log.append(e.entry)
                result.skipped.append(f"{action.type}: aggregation failed")
                continue
            except ActionError as e:
                logger.warning("Skipping action #%d (%s): %s", index, action.type, e)
                result.skipped.append(f"{action.type}: {e}")
                continue
            except Exception:
                logger.exception("Action #%d (%s) failed", index, action.type)
                # Discard a half-flushed unit of work so later actions can commit
                self.store.session.rollback()
                result.skipped.append(f"{action.type}: failed")
                continue
            result.log.append(entry)
        result.new_project_id = state.last_project_id
        logger.info(
            "Executed %d/%d assistant actions", result.executed_count, len(actions)
        )
        return result

    def _apply(self, action: Action, categories: Sequence[Category], state: BatchState) -> str:
        if isinstance(action, CreateProjectAction):
            return self.create_project(action, categories, state)
        if isinstance(action, CreateTaskAction):
            return self.create_task(action, state)
        if isinstance(action, UpdateTaskAction):
            return self.update_task(action)
        if isinstance(action, UpdateProjectAction):
            return self.update_project(action)
        raise ActionError(f"unsupported action {type(action).__name__}")

    def create_project(
        self, action: CreateProjectAction, categories: Sequence[Category], state: BatchState
    ) -> str:
        project = self.store.create_project(
            name=action.name,
            description=action.description or None,
            category_id=resolve_category_id(action.category_id, categories),
            status="active",
            percent_complete=0,
        )
        state.last_project_id = project.id
        return f'Created project "{project.name}"'

    def create_task(self, action: CreateTaskAction, state: BatchState) -> str:
        project_id = action.project_id
        if project_id == NEW_PROJECT_PLACEHOLDER:
            if state.last_project_id is None:
                raise ActionError("NEW_PROJECT used before any project was created in this batch")
            project_id = state.last_project_id

        if self.store.get_project(project_id) is None:
            raise ActionError(f"project {project_id} not found")

        parent_id = action.parent_task_id or None
        if parent_id is not None:
            parent = self.store.get_task(parent_id)
            if parent is None:
                raise ActionError(f"parent task {parent_id} not found")
            if parent.project_id != project_id:
                raise ActionError(f"parent task {parent_id} belongs to another project")

        task = self.store.create_task(
            project_id=project_id,
            parent_task_id=parent_id,
            name=action.name,
            description=action.description or None,
            percent_complete=0,
            is_completed=False,
            status=STATUS_PENDING,
            sort_order=0,
        )
        entry = f'Created task "{task.name}"'
        self._cascade(task, entry)
        return entry

    def update_task(self, action: UpdateTaskAction) -> str:
        existing = self.store.get_task(action.task_id)
        if existing is None:
            raise ActionError(f"task {action.task_id} not found")
        name = existing.name

        updates = derive_task_updates(
            current_percent=existing.percent_complete,
            current_status=existing.status,
            percent=action.percent_complete,
            is_completed=action.is_completed,
        )
        if updates and self.store.get_children(existing.id):
            # A parent task's progress is the mean of its subtasks
            if not action.has_roadblocks:
                raise ActionError(f'task "{name}" has subtasks; its progress follows them')
            logger.info("Ignoring progress fields for parent task %s", existing.id)
            updates = {}
        if action.has_roadblocks:
            updates["roadblocks"] = action.roadblocks

        entry = f'Updated task "{name}"'
        task = self.store.update_task(action.task_id, **updates)
        if task is not None:
            self._cascade(task, entry)
        return entry

    def _cascade(self, task, entry: str) -> None:
        try:
            self.aggregator.cascade(task)
        except Exception as e:
            raise AggregationError(entry) from e

    def update_project(self, action: UpdateProjectAction) -> str:
        existing = self.store.get_project(action.project_id)
        if existing is None:
            raise ActionError(f"project {action.project_id} not found")
        updates: dict = {}
        if action.percent_complete is not None:
            updates["percent_complete"] = action.percent_complete
        if action.has_roadblocks:
            updates["roadblocks"] = action.roadblocks
        # Direct override: no aggregation afterwards
        self.store.update_project(action.project_id, **updates)
        return f'Updated project "{existing.name}"'


def derive_task_updates(
    current_percent: int,
    current_status: str,
    percent: int | None = None,
    is_completed: bool | None = None,
) -> dict:
    """Field updates implied by a new percentage and/or completion flag.

    A percentage derives ``is_completed`` and ``status`` first; an explicit
    ``is_completed`` then overrides. ``is_completed=True`` forces 100 unless
    a percentage was given; ``is_completed=False`` on a finished task
    reopens it at 0. A custom status (e.g. "blocked") survives a
    percentage that would otherwise mean "pending".
    """
    updates: dict = {}
    if percent is not None:
        updates["percent_complete"] = percent
        updates["is_completed"] = percent == 100
        derived = status_for_percent(percent)
        if derived == STATUS_PENDING and current_status not in TASK_STATUSES:
            derived = current_status
        updates["status"] = derived
    if is_completed is not None:
        updates["is_completed"] = is_completed
        if is_completed:
            if percent is None:
                updates["percent_complete"] = 100
                updates["status"] = status_for_percent(100)
        elif percent is None:
            if current_percent >= 100:
                # Unchecking a finished task reopens it from scratch
                updates["percent_complete"] = 0
                updates["status"] = STATUS_PENDING
            else:
                updates["percent_complete"] = current_percent
    return updates
