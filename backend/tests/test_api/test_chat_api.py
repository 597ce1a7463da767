"""Tests for the assistant chat endpoint (SSE stream)."""

import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

import pytest

from taskpilot.api.v1 import chat as chat_module
from taskpilot.api.v1.chat import CHAT_ERROR_MESSAGE, conversation_title
from taskpilot.config import settings
from taskpilot.llm.mock_layer import MockLLMLayer


@pytest.fixture(autouse=True)
def _no_stream_delay(monkeypatch):
    monkeypatch.setattr(settings, "chat_stream_word_delay", 0)


def _with_llm(replies=None, error=None):
    mock = MockLLMLayer(replies=replies, error=error)
    chat_module.set_llm(mock)
    return mock


def _frames(resp):
    """Decode every ``data:`` frame of an SSE body."""
    return [
        json.loads(line[len("data: "):])
        for line in resp.text.splitlines()
        if line.startswith("data: ")
    ]


def _reply(actions, message):
    return json.dumps({"actions": actions, "responseMessage": message})


def test_chat_disabled_without_llm(client):
    resp = client.post("/api/v1/ai/chat", json={"message": "hello"})
    assert resp.status_code == 503
    print("  PASS: chat_disabled_without_llm")


def test_blank_message_rejected(client):
    _with_llm()
    assert client.post("/api/v1/ai/chat", json={"message": "   "}).status_code == 422
    assert client.post("/api/v1/ai/chat", json={"message": ""}).status_code == 422
    print("  PASS: blank_message_rejected")


def test_unknown_conversation_404(client):
    _with_llm()
    resp = client.post("/api/v1/ai/chat", json={"message": "hi", "conversation_id": "missing"})
    assert resp.status_code == 404
    print("  PASS: unknown_conversation_404")


def test_plain_reply_streams_words(client):
    _with_llm(replies=[_reply([], "Nothing to change today")])
    resp = client.post("/api/v1/ai/chat", json={"message": "How am I doing?"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    frames = _frames(resp)
    words = [f["content"] for f in frames if "content" in f]
    assert words == ["Nothing", " to", " change", " today"]
    assert "".join(words) == "Nothing to change today"

    final = frames[-1]
    assert final["done"] is True
    assert final["actionsExecuted"] is False
    assert final["conversationId"]
    assert not any(f.get("isAction") for f in frames)
    print("  PASS: plain_reply_streams_words")


def test_actions_applied_before_stream(client):
    client.post("/api/v1/categories", json={"name": "Work"})
    _with_llm(replies=[_reply(
        [
            {"type": "create_project", "name": "Q2 Planning"},
            {"type": "create_task", "projectId": "NEW_PROJECT", "name": "Kickoff"},
        ],
        "Created Q2 Planning.",
    )])

    resp = client.post("/api/v1/ai/chat", json={"message": "Create Q2 Planning with a Kickoff task"})
    frames = _frames(resp)

    assert frames[0]["isAction"] is True
    assert frames[0]["content"] == (
        '[Actions completed: Created project "Q2 Planning", Created task "Kickoff"]\n\n'
    )
    assert frames[-1]["actionsExecuted"] is True

    projects = client.get("/api/v1/projects").json()
    assert [p["name"] for p in projects] == ["Q2 Planning"]
    assert [t["name"] for t in projects[0]["tasks"]] == ["Kickoff"]
    print("  PASS: actions_applied_before_stream")


def test_conversation_persisted_and_reused(client):
    mock = _with_llm(replies=[_reply([], "First answer"), _reply([], "Second answer")])

    first = _frames(client.post("/api/v1/ai/chat", json={"message": "Plan my week"}))
    cid = first[-1]["conversationId"]
    second = _frames(client.post(
        "/api/v1/ai/chat", json={"message": "And next week?", "conversation_id": cid},
    ))
    assert second[-1]["conversationId"] == cid

    detail = client.get(f"/api/v1/conversations/{cid}").json()
    assert detail["title"] == "Plan my week"
    assert [(m["role"], m["content"]) for m in detail["messages"]] == [
        ("user", "Plan my week"),
        ("assistant", "First answer"),
        ("user", "And next week?"),
        ("assistant", "Second answer"),
    ]
    # The second call carries the earlier exchange as history
    assert mock.call_log[1]["messages"] == [
        {"role": "user", "content": "Plan my week"},
        {"role": "assistant", "content": "First answer"},
        {"role": "user", "content": "And next week?"},
    ]
    print("  PASS: conversation_persisted_and_reused")


def test_unparseable_reply_uses_fallback(client):
    _with_llm(replies=["I made the project for you!"])
    frames = _frames(client.post("/api/v1/ai/chat", json={"message": "Make a project"}))
    text = "".join(f["content"] for f in frames if "content" in f)
    assert text == "I had trouble understanding that. Could you rephrase?"
    assert frames[-1]["actionsExecuted"] is False
    assert client.get("/api/v1/projects").json() == []
    print("  PASS: unparseable_reply_uses_fallback")


def test_model_error_sends_error_frame(client):
    _with_llm(error=RuntimeError("API down"))
    resp = client.post("/api/v1/ai/chat", json={"message": "hello"})
    assert resp.status_code == 200
    frames = _frames(resp)
    assert len(frames) == 1
    assert frames[0]["error"] == CHAT_ERROR_MESSAGE
    assert frames[0]["done"] is True
    assert frames[0]["actionsExecuted"] is False
    print("  PASS: model_error_sends_error_frame")


def test_conversation_title_truncates():
    assert conversation_title("  short   message ") == "short message"
    long_message = "word " * 30
    title = conversation_title(long_message)
    assert title.endswith("...")
    assert len(title) == 53
    print("  PASS: conversation_title_truncates")
