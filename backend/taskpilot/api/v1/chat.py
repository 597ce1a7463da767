"""Assistant chat endpoint — natural language in, tracker mutations + SSE out.

POST /api/v1/ai/chat — Run one assistant turn, stream the reply

The whole action batch is applied and both messages are stored before
the first frame is sent; the word-by-word stream afterwards is only
pacing. Every stream ends with a frame carrying ``"done": true``, even
when the turn fails, so clients never wait on a dangling stream.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlmodel import Session

from taskpilot.agents.assistant import AssistantTurn, ProjectAssistant
from taskpilot.config import settings
from taskpilot.db.database import get_session
from taskpilot.models.messages import ChatFrame
from taskpilot.storage.store import TrackerStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["chat"])

CHAT_ERROR_MESSAGE = "Failed to get AI response"
TITLE_LENGTH = 50

# Module-level LLM reference, set by main.py at startup
_llm = None


def set_llm(llm) -> None:
    """Wire the LLM layer used by the assistant (None disables chat)."""
    global _llm
    _llm = llm


def is_chat_enabled() -> bool:
    return _llm is not None


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=8000)
    conversation_id: str | None = None


def conversation_title(message: str) -> str:
    """Title for a lazily created conversation."""
    text = " ".join(message.split())
    if len(text) <= TITLE_LENGTH:
        return text
    return text[:TITLE_LENGTH] + "..."


def reply_frames(turn: AssistantTurn, conversation_id: str) -> list[ChatFrame]:
    """Frames for a successful turn: action summary, words, terminator."""
    frames: list[ChatFrame] = []
    if turn.actions_executed:
        frames.append(ChatFrame(content=turn.summary, is_action=True))
    words = turn.reply.response_message.split(" ")
    for i, word in enumerate(words):
        frames.append(ChatFrame(content=("" if i == 0 else " ") + word))
    frames.append(ChatFrame(
        done=True,
        actions_executed=turn.actions_executed,
        conversation_id=conversation_id,
    ))
    return frames


def error_frames(conversation_id: str | None) -> list[ChatFrame]:
    return [ChatFrame(
        error=CHAT_ERROR_MESSAGE,
        done=True,
        actions_executed=False,
        conversation_id=conversation_id,
    )]


def _sse_data(frame: ChatFrame) -> str:
    """Format an unnamed SSE data frame."""
    return f"data: {frame.to_json()}\n\n"


async def _stream(frames: list[ChatFrame], delay: float) -> AsyncIterator[str]:
    for frame in frames:
        yield _sse_data(frame)
        if delay > 0 and frame.content is not None and not frame.is_action:
            await asyncio.sleep(delay)


@router.post("/ai/chat")
async def chat(body: ChatRequest, session: Session = Depends(get_session)) -> StreamingResponse:
    """Run one assistant turn and stream the reply as SSE ``data:`` frames."""
    if _llm is None:
        raise HTTPException(status_code=503, detail="Assistant is not configured.")
    message = body.message.strip()
    if not message:
        raise HTTPException(status_code=422, detail="Message must not be blank")

    store = TrackerStore(session)
    if body.conversation_id:
        conversation = store.get_conversation(body.conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
    else:
        conversation = store.create_conversation(title=conversation_title(message))
    conversation_id = conversation.id

    try:
        history = store.get_messages(conversation_id, limit=settings.chat_history_limit)
        store.append_message(conversation_id, "user", message)
        turn = await ProjectAssistant(_llm, store).handle(message, history)
        store.append_message(conversation_id, "assistant", turn.full_text)
        frames = reply_frames(turn, conversation_id)
    except Exception as e:
        logger.error("Assistant chat failed for conversation %s: %s", conversation_id, e, exc_info=True)
        session.rollback()
        frames = error_frames(conversation_id)

    return StreamingResponse(
        _stream(frames, settings.chat_stream_word_delay),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
