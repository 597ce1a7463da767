"""Tests for the ProjectAssistant — snapshot, prompt, and full turn handling."""

import asyncio
import json
import os
import sys
import threading

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

import pytest

from taskpilot.agents.assistant import ProjectAssistant, normalize_history
from taskpilot.config import settings
from taskpilot.engines.actions import FALLBACK_UNPARSEABLE_REPLY
from taskpilot.llm.mock_layer import MockLLMLayer


def _make_assistant(store, aggregator, replies=None, error=None):
    mock = MockLLMLayer(replies=replies, error=error)
    return ProjectAssistant(llm=mock, store=store, aggregator=aggregator), mock


def _seed_project(store):
    category = store.create_category("Work")
    project = store.create_project(name="Website", category_id=category.id)
    parent = store.create_task(project_id=project.id, name="Design", sort_order=0)
    store.create_task(project_id=project.id, name="Mockups", parent_task_id=parent.id,
                      percent_complete=40, status="in-progress")
    store.create_task(project_id=project.id, name="Launch", sort_order=1)
    return category, project, parent


def test_snapshot_flattens_tasks_with_depth(store, aggregator):
    _, project, parent = _seed_project(store)
    assistant, _ = _make_assistant(store, aggregator)

    snapshot = assistant.build_snapshot()

    assert len(snapshot) == 1
    entry = snapshot[0]
    assert entry["id"] == project.id
    assert entry["name"] == "Website"
    assert [(t["name"], t["depth"]) for t in entry["tasks"]] == [
        ("Design", 0), ("Mockups", 1), ("Launch", 0),
    ]
    design = entry["tasks"][0]
    assert design["hasSubtasks"] is True
    assert entry["tasks"][1]["parentTaskId"] == parent.id
    assert entry["tasks"][1]["percentComplete"] == 40
    print("  PASS: snapshot_flattens_tasks_with_depth")


def test_system_prompt_embeds_state(store, aggregator):
    category, project, _ = _seed_project(store)
    assistant, _ = _make_assistant(store, aggregator)

    prompt = assistant.build_system_prompt(store.list_categories(), assistant.build_snapshot())

    assert category.id in prompt
    assert project.id in prompt
    assert "NEW_PROJECT" in prompt
    assert "$categories" not in prompt
    assert "$projects" not in prompt
    print("  PASS: system_prompt_embeds_state")


def test_normalize_history():
    history = [
        {"role": "assistant", "content": "Welcome!"},
        {"role": "user", "content": "first"},
        {"role": "user", "content": "second"},
        {"role": "assistant", "content": "ok"},
        {"role": "system", "content": "ignored"},
        {"role": "user", "content": ""},
    ]
    assert normalize_history(history) == [
        {"role": "user", "content": "first\n\nsecond"},
        {"role": "assistant", "content": "ok"},
    ]
    print("  PASS: normalize_history")


def test_build_messages_appends_user_turn(store, aggregator):
    assistant, _ = _make_assistant(store, aggregator)
    messages = assistant.build_messages(
        "add a task", [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
    )
    assert messages[-1] == {"role": "user", "content": "add a task"}
    assert len(messages) == 3
    print("  PASS: build_messages_appends_user_turn")


def test_handle_applies_actions(store, aggregator):
    store.create_category("Work")
    reply = json.dumps({
        "actions": [
            {"type": "create_project", "name": "Q2 Planning"},
            {"type": "create_task", "projectId": "NEW_PROJECT", "name": "Kickoff"},
        ],
        "responseMessage": "Created your project.",
    })
    assistant, mock = _make_assistant(store, aggregator, replies=[reply])

    turn = asyncio.run(assistant.handle("Create Q2 Planning with a kickoff task"))

    assert turn.actions_executed is True
    assert turn.summary == '[Actions completed: Created project "Q2 Planning", Created task "Kickoff"]\n\n'
    assert turn.full_text.endswith("Created your project.")
    project = store.get_project(turn.batch.new_project_id)
    assert [t.name for t in store.get_tasks_by_project(project.id)] == ["Kickoff"]

    call = mock.call_log[0]
    assert call["model_tier"] == settings.chat_model_tier
    assert call["max_tokens"] == settings.chat_max_tokens
    assert call["temperature"] == settings.chat_temperature
    assert call["messages"] == [
        {"role": "user", "content": "Create Q2 Planning with a kickoff task"}
    ]
    print("  PASS: handle_applies_actions")


def test_handle_runs_batch_in_executor(store, aggregator, monkeypatch):
    store.create_category("Work")
    assistant, _ = _make_assistant(store, aggregator)
    threads = []
    execute = assistant.interpreter.execute

    def recording_execute(actions, categories):
        threads.append(threading.get_ident())
        return execute(actions, categories)

    monkeypatch.setattr(assistant.interpreter, "execute", recording_execute)
    turn = asyncio.run(assistant.handle("hello"))

    assert turn.actions_executed is False
    assert len(threads) == 1
    assert threads[0] != threading.get_ident()
    print("  PASS: handle_runs_batch_in_executor")


def test_handle_bad_reply_changes_nothing(store, aggregator):
    assistant, _ = _make_assistant(store, aggregator, replies=["Sure, I did it!"])
    turn = asyncio.run(assistant.handle("make a project"))
    assert turn.reply.fallback is True
    assert turn.actions_executed is False
    assert turn.full_text == FALLBACK_UNPARSEABLE_REPLY
    assert store.list_projects() == []
    print("  PASS: handle_bad_reply_changes_nothing")


def test_handle_propagates_model_error(store, aggregator):
    assistant, _ = _make_assistant(store, aggregator, error=RuntimeError("API down"))
    with pytest.raises(RuntimeError):
        asyncio.run(assistant.handle("hello"))
    print("  PASS: handle_propagates_model_error")
