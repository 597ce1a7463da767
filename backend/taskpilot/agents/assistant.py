"""Project Assistant — turns one chat message into an applied action batch.

Model: Sonnet by default (``settings.chat_model_tier``)
Flow: snapshot tracker state → system prompt → model reply →
parse_assistant_reply → ActionInterpreter → reply text for the user.

Model and store failures propagate to the caller. A malformed reply
does not: it becomes a fallback message with zero actions.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Any

from taskpilot.config import ModelTier, settings
from taskpilot.engines.actions import AssistantReply, parse_assistant_reply
from taskpilot.engines.completion import CompletionAggregator
from taskpilot.engines.interpreter import ActionInterpreter, BatchResult, format_action_summary
from taskpilot.engines.task_tree import build_task_tree, iter_task_tree
from taskpilot.llm.layer import LLMResponse, extract_text
from taskpilot.models.tracker import Category
from taskpilot.storage.store import TrackerStore

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"
SYSTEM_PROMPT_FILE = "project_assistant.md"


@dataclass
class AssistantTurn:
    """Result of one handled chat message."""

    reply: AssistantReply
    batch: BatchResult
    meta: LLMResponse | None = None

    @property
    def summary(self) -> str:
        return format_action_summary(self.batch.log)

    @property
    def actions_executed(self) -> bool:
        return self.batch.executed_count > 0

    @property
    def full_text(self) -> str:
        """Text persisted as the assistant message."""
        return self.summary + self.reply.response_message


def load_prompt_template(filename: str = SYSTEM_PROMPT_FILE) -> Template:
    return Template((PROMPTS_DIR / filename).read_text(encoding="utf-8"))


def normalize_history(history: Sequence[Any]) -> list[dict]:
    """Role/content pairs the Messages API accepts.

    Accepts Message rows or dicts. Leading assistant turns are dropped and
    consecutive turns of the same role are merged, since the API requires
    strictly alternating roles starting with the user.
    """
    normalized: list[dict] = []
    for item in history:
        role = item["role"] if isinstance(item, dict) else item.role
        content = item["content"] if isinstance(item, dict) else item.content
        if role not in ("user", "assistant") or not content:
            continue
        if not normalized and role == "assistant":
            continue
        if normalized and normalized[-1]["role"] == role:
            normalized[-1]["content"] += "\n\n" + content
        else:
            normalized.append({"role": role, "content": content})
    return normalized


class ProjectAssistant:
    """Natural-language front end to the tracker."""

    def __init__(
        self,
        llm,
        store: TrackerStore,
        aggregator: CompletionAggregator | None = None,
        model_tier: ModelTier | None = None,
    ) -> None:
        self.llm = llm
        self.store = store
        self.aggregator = aggregator or CompletionAggregator(store)
        self.interpreter = ActionInterpreter(store, self.aggregator)
        self.model_tier: ModelTier = model_tier or settings.chat_model_tier
        self._template = load_prompt_template()

    # === Context ===

    def build_snapshot(self) -> list[dict]:
        """Projects with their flattened task trees, as sent to the model."""
        snapshot = []
        for project in self.store.list_projects():
            forest = build_task_tree(self.store.get_tasks_by_project(project.id))
            tasks = [
                {
                    "id": node.id,
                    "name": node.name,
                    "parentTaskId": node.parent_task_id,
                    "depth": depth,
                    "percentComplete": node.percent_complete,
                    "isCompleted": node.is_completed,
                    "status": node.status,
                    "roadblocks": node.roadblocks,
                    "hasSubtasks": bool(node.children),
                }
                for node, depth in iter_task_tree(forest)
            ]
            snapshot.append({
                "id": project.id,
                "name": project.name,
                "description": project.description,
                "categoryId": project.category_id,
                "status": project.status,
                "percentComplete": project.percent_complete,
                "roadblocks": project.roadblocks,
                "tasks": tasks,
            })
        return snapshot

    def build_system_prompt(self, categories: Sequence[Category], snapshot: list[dict]) -> str:
        return self._template.safe_substitute(
            categories=json.dumps([{"id": c.id, "name": c.name} for c in categories], indent=2),
            projects=json.dumps(snapshot, indent=2),
        )

    def build_messages(self, message: str, history: Sequence[Any] = ()) -> list[dict]:
        messages = normalize_history(history)
        if messages and messages[-1]["role"] == "user":
            messages[-1]["content"] += "\n\n" + message
        else:
            messages.append({"role": "user", "content": message})
        return messages

    # === Turn handling ===

    async def interpret(
        self,
        message: str,
        history: Sequence[Any] = (),
        categories: Sequence[Category] | None = None,
    ) -> tuple[AssistantReply, LLMResponse]:
        """Ask the model for an action batch. Only the model call can raise."""
        if categories is None:
            categories = self.store.list_categories()
        system = self.build_system_prompt(categories, self.build_snapshot())
        response, meta = await self.llm.complete_raw(
            messages=self.build_messages(message, history),
            model_tier=self.model_tier,
            system=self.llm.build_cached_system(system),
            max_tokens=settings.chat_max_tokens,
            temperature=settings.chat_temperature,
        )
        reply = parse_assistant_reply(extract_text(response))
        logger.info(
            "Assistant reply: %d action(s), %d dropped, fallback=%s, cost=$%.4f",
            len(reply.actions), reply.dropped_actions, reply.fallback, meta.cost,
        )
        return reply, meta

    async def handle(self, message: str, history: Sequence[Any] = ()) -> AssistantTurn:
        """Interpret ``message`` and apply the resulting batch."""
        categories = list(self.store.list_categories())
        reply, meta = await self.interpret(message, history, categories)
        # Store writes block; run the batch in the executor off the event loop
        loop = asyncio.get_running_loop()
        batch = await loop.run_in_executor(
            None, self.interpreter.execute, reply.actions, categories
        )
        return AssistantTurn(reply=reply, batch=batch, meta=meta)
