"""Tracker Store — single-record CRUD + query-by-parent over SQLModel sessions.

Every mutating call commits on its own; there are no cross-record
transactions. Lookups of unknown ids return ``None`` (or ``False`` / ``0``
for deletes) instead of raising, so callers decide what "not found" means.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Sequence

from sqlmodel import Session, select

from taskpilot.models.messages import Conversation, Message
from taskpilot.models.tracker import Category, Project, Task

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = {"id", "created_at"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TrackerStore:
    """CRUD for categories, projects, tasks, conversations and messages."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _save(self, entry):
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    @staticmethod
    def _apply(entry, fields: dict) -> None:
        for key, value in fields.items():
            if key in _IMMUTABLE_FIELDS or not hasattr(entry, key):
                continue
            setattr(entry, key, value)

    # === Categories ===

    def list_categories(self) -> Sequence[Category]:
        """All categories in creation order."""
        statement = select(Category).order_by(Category.sort_order, Category.created_at)  # type: ignore[arg-type]
        return self.session.exec(statement).all()

    def get_category(self, category_id: str) -> Category | None:
        return self.session.get(Category, category_id)

    def create_category(self, name: str, color: str | None = None) -> Category:
        position = len(self.list_categories())
        category = Category(name=name, sort_order=position)
        if color:
            category.color = color
        return self._save(category)

    def update_category(self, category_id: str, **kwargs) -> Category | None:
        category = self.session.get(Category, category_id)
        if category is None:
            return None
        self._apply(category, kwargs)
        return self._save(category)

    def delete_category(self, category_id: str) -> bool:
        """Delete a category and detach the projects that referenced it."""
        category = self.session.get(Category, category_id)
        if category is None:
            return False
        projects = self.session.exec(
            select(Project).where(Project.category_id == category_id)
        ).all()
        for project in projects:
            project.category_id = None
            project.updated_at = _now()
            self.session.add(project)
        self.session.delete(category)
        self.session.commit()
        return True

    # === Projects ===

    def list_projects(self) -> Sequence[Project]:
        statement = select(Project).order_by(Project.created_at)  # type: ignore[arg-type]
        return self.session.exec(statement).all()

    def get_project(self, project_id: str) -> Project | None:
        return self.session.get(Project, project_id)

    def create_project(
        self,
        name: str,
        description: str | None = None,
        category_id: str | None = None,
        status: str = "active",
        percent_complete: int = 0,
        roadblocks: str | None = None,
        ai_suggestions: str | None = None,
    ) -> Project:
        project = Project(
            name=name,
            description=description,
            category_id=category_id,
            status=status,
            percent_complete=percent_complete,
            roadblocks=roadblocks,
            ai_suggestions=ai_suggestions,
        )
        return self._save(project)

    def update_project(self, project_id: str, **kwargs) -> Project | None:
        """Update fields on a project. Only the given keyword fields change."""
        project = self.session.get(Project, project_id)
        if project is None:
            return None
        self._apply(project, kwargs)
        project.updated_at = _now()
        return self._save(project)

    def delete_project(self, project_id: str) -> bool:
        """Delete a project together with every task it owns."""
        project = self.session.get(Project, project_id)
        if project is None:
            return False
        for task in self.get_tasks_by_project(project_id):
            self.session.delete(task)
        self.session.delete(project)
        self.session.commit()
        return True

    # === Tasks ===

    def get_task(self, task_id: str) -> Task | None:
        return self.session.get(Task, task_id)

    def get_tasks_by_project(self, project_id: str) -> Sequence[Task]:
        """Flat task list of a project, ordered by sort_order then age."""
        statement = (
            select(Task)
            .where(Task.project_id == project_id)
            .order_by(Task.sort_order, Task.created_at)  # type: ignore[arg-type]
        )
        return self.session.exec(statement).all()

    def get_children(self, task_id: str) -> Sequence[Task]:
        statement = (
            select(Task)
            .where(Task.parent_task_id == task_id)
            .order_by(Task.sort_order, Task.created_at)  # type: ignore[arg-type]
        )
        return self.session.exec(statement).all()

    def create_task(
        self,
        project_id: str,
        name: str,
        description: str | None = None,
        parent_task_id: str | None = None,
        percent_complete: int = 0,
        is_completed: bool = False,
        status: str = "pending",
        roadblocks: str | None = None,
        ai_suggestions: str | None = None,
        sort_order: int = 0,
    ) -> Task:
        task = Task(
            project_id=project_id,
            parent_task_id=parent_task_id,
            name=name,
            description=description,
            percent_complete=percent_complete,
            is_completed=is_completed,
            status=status,
            roadblocks=roadblocks,
            ai_suggestions=ai_suggestions,
            sort_order=sort_order,
        )
        return self._save(task)

    def update_task(self, task_id: str, **kwargs) -> Task | None:
        """Update fields on a task. Only the given keyword fields change."""
        task = self.session.get(Task, task_id)
        if task is None:
            return None
        self._apply(task, kwargs)
        task.updated_at = _now()
        return self._save(task)

    def descendant_ids(self, task: Task) -> list[str]:
        """Ids of every task below ``task``, in depth-first pre-order."""
        children_of: dict[str, list[Task]] = defaultdict(list)
        for candidate in self.get_tasks_by_project(task.project_id):
            if candidate.parent_task_id is not None:
                children_of[candidate.parent_task_id].append(candidate)

        ordered: list[str] = []
        seen = {task.id}
        stack = list(reversed(children_of.get(task.id, [])))
        while stack:
            node = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            ordered.append(node.id)
            stack.extend(reversed(children_of.get(node.id, [])))
        return ordered

    def delete_task(self, task_id: str) -> int:
        """Delete a task and its whole subtree, children before parents.

        Returns the number of deleted tasks (0 if the id is unknown). The
        caller re-runs completion aggregation on the former parent and the
        project afterwards.
        """
        task = self.session.get(Task, task_id)
        if task is None:
            return 0
        # Reversed pre-order puts every descendant before its ancestors
        doomed = self.descendant_ids(task)
        for descendant_id in reversed(doomed):
            descendant = self.session.get(Task, descendant_id)
            if descendant is not None:
                self.session.delete(descendant)
        self.session.delete(task)
        self.session.commit()
        logger.info("Deleted task %s with %d descendants", task_id, len(doomed))
        return len(doomed) + 1

    # === Conversations ===

    def list_conversations(self, limit: int = 50, offset: int = 0) -> Sequence[Conversation]:
        """List conversations, most recently active first."""
        statement = (
            select(Conversation)
            .order_by(Conversation.updated_at.desc())  # type: ignore[union-attr]
            .offset(offset)
            .limit(limit)
        )
        return self.session.exec(statement).all()

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.session.get(Conversation, conversation_id)

    def create_conversation(self, title: str = "") -> Conversation:
        return self._save(Conversation(title=title))

    def rename_conversation(self, conversation_id: str, title: str) -> Conversation | None:
        conversation = self.session.get(Conversation, conversation_id)
        if conversation is None:
            return None
        conversation.title = title
        conversation.updated_at = _now()
        return self._save(conversation)

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and all of its messages."""
        conversation = self.session.get(Conversation, conversation_id)
        if conversation is None:
            return False
        for message in self.get_messages(conversation_id):
            self.session.delete(message)
        self.session.delete(conversation)
        self.session.commit()
        return True

    def get_messages(self, conversation_id: str, limit: int | None = None) -> Sequence[Message]:
        """Messages in append order; with ``limit``, only the most recent ones."""
        statement = select(Message).where(Message.conversation_id == conversation_id)
        if limit is None:
            statement = statement.order_by(Message.position)  # type: ignore[arg-type]
            return self.session.exec(statement).all()
        statement = statement.order_by(Message.position.desc()).limit(limit)  # type: ignore[union-attr]
        return list(reversed(self.session.exec(statement).all()))

    def append_message(self, conversation_id: str, role: str, content: str) -> Message | None:
        """Append a message and bump the conversation's updated_at."""
        conversation = self.session.get(Conversation, conversation_id)
        if conversation is None:
            return None
        conversation.message_count += 1
        conversation.updated_at = _now()
        message = Message(
            conversation_id=conversation_id,
            position=conversation.message_count,
            role=role,
            content=content,
        )
        self.session.add(conversation)
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)
        return message
