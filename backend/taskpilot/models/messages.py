"""Conversation and message models.

Includes: Conversation (SQL), Message (SQL), ChatFrame (Pydantic).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlmodel import Field as SQLField
from sqlmodel import SQLModel

MessageRole = Literal["user", "assistant"]


class Conversation(SQLModel, table=True):
    """A chat thread with the project assistant."""

    __tablename__ = "conversation"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    title: str = ""
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    message_count: int = 0


class Message(SQLModel, table=True):
    """A single append-only message within a conversation."""

    __tablename__ = "message"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    conversation_id: str = SQLField(index=True)
    position: int = 0
    role: str = "user"  # "user" | "assistant"
    content: str = ""
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))


# === Pydantic-only models (not persisted) ===


class ChatFrame(BaseModel):
    """One ``data:`` frame of the assistant chat stream.

    Unset fields are omitted on the wire, so a content frame serializes to
    ``{"content": "..."}`` and the terminating frame to
    ``{"done": true, "actionsExecuted": ..., "conversationId": ...}``.
    """

    content: str | None = None
    is_action: bool | None = Field(default=None, serialization_alias="isAction")
    done: bool | None = None
    actions_executed: bool | None = Field(default=None, serialization_alias="actionsExecuted")
    conversation_id: str | None = Field(default=None, serialization_alias="conversationId")
    error: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
