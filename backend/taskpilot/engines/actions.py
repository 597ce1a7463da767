"""Assistant action schemas and the reply parser.

The model replies with loosely structured JSON::

    {"actions": [{"type": "create_task", "projectId": "...", ...}],
     "responseMessage": "..."}

``parse_assistant_reply`` is the only way model output reaches the
interpreter. Anything that is not a JSON object with an ``actions`` list
and a string ``responseMessage`` degrades to zero actions and a canned
message. Individual actions that fail validation are dropped; the rest of
the batch survives.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)

NEW_PROJECT_PLACEHOLDER = "NEW_PROJECT"

FALLBACK_EMPTY_REPLY = "I couldn't process that request."
FALLBACK_UNPARSEABLE_REPLY = "I had trouble understanding that. Could you rephrase?"

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)


def coerce_percent(value: Any) -> Any:
    """Accept ints, floats and numeric strings; round half-up and clamp to 0–100."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("percentComplete must be a number, not a boolean")
    if isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        try:
            value = float(text)
        except ValueError:
            raise ValueError(f"percentComplete is not numeric: {value!r}") from None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("percentComplete must be finite")
        return max(0, min(100, math.floor(value + 0.5)))
    return value


class _Action(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class CreateProjectAction(_Action):
    type: Literal["create_project"]
    name: str = Field(min_length=1)
    description: str | None = None
    category_id: str | None = Field(default=None, alias="categoryId")


class CreateTaskAction(_Action):
    type: Literal["create_task"]
    project_id: str = Field(min_length=1, alias="projectId")
    name: str = Field(min_length=1)
    description: str | None = None
    parent_task_id: str | None = Field(default=None, alias="parentTaskId")


class UpdateTaskAction(_Action):
    type: Literal["update_task"]
    task_id: str = Field(min_length=1, alias="taskId")
    percent_complete: int | None = Field(default=None, alias="percentComplete")
    is_completed: bool | None = Field(default=None, alias="isCompleted")
    roadblocks: str | None = None

    @field_validator("percent_complete", mode="before")
    @classmethod
    def validate_percent(cls, value: Any) -> Any:
        return coerce_percent(value)

    @property
    def has_roadblocks(self) -> bool:
        """True when ``roadblocks`` was in the JSON, including an explicit null."""
        return "roadblocks" in self.model_fields_set


class UpdateProjectAction(_Action):
    type: Literal["update_project"]
    project_id: str = Field(min_length=1, alias="projectId")
    percent_complete: int | None = Field(default=None, alias="percentComplete")
    roadblocks: str | None = None

    @field_validator("percent_complete", mode="before")
    @classmethod
    def validate_percent(cls, value: Any) -> Any:
        return coerce_percent(value)

    @property
    def has_roadblocks(self) -> bool:
        return "roadblocks" in self.model_fields_set


Action = Annotated[
    Union[CreateProjectAction, CreateTaskAction, UpdateTaskAction, UpdateProjectAction],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


class AssistantReply(BaseModel):
    """Validated model reply: the action batch plus the user-facing message."""

    actions: list[Action] = Field(default_factory=list)
    response_message: str
    fallback: bool = False  # True when the raw reply was unusable
    dropped_actions: int = 0


def parse_action(raw: Any) -> Action:
    """Validate one raw action dict. Raises ValidationError."""
    return _action_adapter.validate_python(raw)


def _strip_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text


def _load_json_object(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Tolerate prose around a single JSON object
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(text[start:end + 1])


def parse_assistant_reply(text: str | None) -> AssistantReply:
    """Turn raw model text into an AssistantReply. Never raises."""
    cleaned = _strip_fences((text or "").strip())
    if not cleaned:
        logger.warning("Assistant returned an empty reply")
        return AssistantReply(response_message=FALLBACK_EMPTY_REPLY, fallback=True)

    try:
        payload = _load_json_object(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Assistant reply is not valid JSON: %s", e)
        return AssistantReply(response_message=FALLBACK_UNPARSEABLE_REPLY, fallback=True)

    if not isinstance(payload, dict):
        logger.warning("Assistant reply is JSON but not an object (%s)", type(payload).__name__)
        return AssistantReply(response_message=FALLBACK_UNPARSEABLE_REPLY, fallback=True)

    raw_actions = payload.get("actions")
    if raw_actions is None:
        raw_actions = []
    message = payload.get("responseMessage")
    if not isinstance(raw_actions, list) or not isinstance(message, str) or not message.strip():
        logger.warning(
            "Assistant reply has wrong shape (actions=%s, responseMessage=%s)",
            type(raw_actions).__name__,
            type(message).__name__,
        )
        return AssistantReply(response_message=FALLBACK_UNPARSEABLE_REPLY, fallback=True)

    actions: list[Action] = []
    dropped = 0
    for index, raw in enumerate(raw_actions):
        try:
            actions.append(parse_action(raw))
        except ValidationError as e:
            dropped += 1
            logger.warning(
                "Dropping invalid action #%d (%s): %s",
                index,
                raw.get("type") if isinstance(raw, dict) else type(raw).__name__,
                e.errors(include_url=False),
            )
    return AssistantReply(actions=actions, response_message=message, dropped_actions=dropped)
