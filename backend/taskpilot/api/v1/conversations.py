"""Conversations CRUD API for assistant chat history.

GET    /api/v1/conversations                  — List conversations (newest first)
POST   /api/v1/conversations                  — Create an empty conversation
GET    /api/v1/conversations/{id}             — Get conversation with messages
PATCH  /api/v1/conversations/{id}             — Rename conversation
DELETE /api/v1/conversations/{id}             — Delete conversation + messages
POST   /api/v1/conversations/{id}/messages    — Append a message
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from taskpilot.db.database import get_session
from taskpilot.models.messages import Conversation, Message, MessageRole
from taskpilot.storage.store import TrackerStore

router = APIRouter(prefix="/api/v1", tags=["conversations"])


# === Response models ===


class ConversationSummary(BaseModel):
    """Lightweight conversation entry for list view."""

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int


class MessageDetail(BaseModel):
    """Single message in a conversation."""

    id: str
    conversation_id: str
    position: int
    role: str
    content: str
    created_at: datetime


class ConversationDetail(ConversationSummary):
    """Full conversation with all messages."""

    messages: list[MessageDetail] = Field(default_factory=list)


class ConversationCreateRequest(BaseModel):
    title: str = Field(default="New conversation", min_length=1, max_length=200)


class ConversationRenameRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class MessageCreateRequest(BaseModel):
    role: MessageRole
    content: str = Field(min_length=1)


def _summary(conversation: Conversation) -> ConversationSummary:
    return ConversationSummary(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        message_count=conversation.message_count,
    )


def _message(message: Message) -> MessageDetail:
    return MessageDetail(
        id=message.id,
        conversation_id=message.conversation_id,
        position=message.position,
        role=message.role,
        content=message.content,
        created_at=message.created_at,
    )


# === Endpoints ===


@router.get("/conversations", response_model=list[ConversationSummary])
def list_conversations(
    limit: int = 50,
    offset: int = 0,
    session: Session = Depends(get_session),
) -> list[ConversationSummary]:
    """List conversations, newest first."""
    store = TrackerStore(session)
    return [_summary(c) for c in store.list_conversations(limit=min(limit, 100), offset=offset)]


@router.post("/conversations", response_model=ConversationSummary, status_code=201)
def create_conversation(
    body: ConversationCreateRequest,
    session: Session = Depends(get_session),
) -> ConversationSummary:
    return _summary(TrackerStore(session).create_conversation(title=body.title))


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
def get_conversation(
    conversation_id: str,
    session: Session = Depends(get_session),
) -> ConversationDetail:
    """Get conversation with all messages in append order."""
    store = TrackerStore(session)
    conversation = store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ConversationDetail(
        **_summary(conversation).model_dump(),
        messages=[_message(m) for m in store.get_messages(conversation_id)],
    )


@router.patch("/conversations/{conversation_id}", response_model=ConversationSummary)
def rename_conversation(
    conversation_id: str,
    body: ConversationRenameRequest,
    session: Session = Depends(get_session),
) -> ConversationSummary:
    conversation = TrackerStore(session).rename_conversation(conversation_id, body.title)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _summary(conversation)


@router.delete("/conversations/{conversation_id}", status_code=204)
def delete_conversation(
    conversation_id: str,
    session: Session = Depends(get_session),
) -> None:
    """Delete conversation and all its messages."""
    if not TrackerStore(session).delete_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageDetail,
    status_code=201,
)
def append_message(
    conversation_id: str,
    body: MessageCreateRequest,
    session: Session = Depends(get_session),
) -> MessageDetail:
    message = TrackerStore(session).append_message(conversation_id, body.role, body.content)
    if message is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _message(message)
