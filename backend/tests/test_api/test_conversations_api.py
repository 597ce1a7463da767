"""Tests for the Conversations API."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")


def _make_conversation(client, title="Planning"):
    resp = client.post("/api/v1/conversations", json={"title": title})
    assert resp.status_code == 201
    return resp.json()


def test_create_default_title(client):
    resp = client.post("/api/v1/conversations", json={})
    assert resp.status_code == 201
    assert resp.json()["title"] == "New conversation"
    assert resp.json()["message_count"] == 0
    print("  PASS: create_default_title")


def test_append_and_get_messages(client):
    conversation = _make_conversation(client)
    cid = conversation["id"]
    first = client.post(f"/api/v1/conversations/{cid}/messages", json={"role": "user", "content": "hi"})
    assert first.status_code == 201
    client.post(f"/api/v1/conversations/{cid}/messages", json={"role": "assistant", "content": "hello"})

    detail = client.get(f"/api/v1/conversations/{cid}").json()
    assert detail["message_count"] == 2
    assert [(m["role"], m["content"]) for m in detail["messages"]] == [
        ("user", "hi"), ("assistant", "hello"),
    ]
    assert [m["position"] for m in detail["messages"]] == [1, 2]
    print("  PASS: append_and_get_messages")


def test_invalid_role_rejected(client):
    cid = _make_conversation(client)["id"]
    resp = client.post(f"/api/v1/conversations/{cid}/messages", json={"role": "system", "content": "x"})
    assert resp.status_code == 422
    print("  PASS: invalid_role_rejected")


def test_list_newest_activity_first(client):
    older = _make_conversation(client, "Older")
    _make_conversation(client, "Newer")
    client.post(f"/api/v1/conversations/{older['id']}/messages", json={"role": "user", "content": "bump"})

    titles = [c["title"] for c in client.get("/api/v1/conversations").json()]
    assert titles == ["Older", "Newer"]
    print("  PASS: list_newest_activity_first")


def test_rename_and_delete(client):
    cid = _make_conversation(client)["id"]
    renamed = client.patch(f"/api/v1/conversations/{cid}", json={"title": "Renamed"})
    assert renamed.status_code == 200
    assert renamed.json()["title"] == "Renamed"

    assert client.delete(f"/api/v1/conversations/{cid}").status_code == 204
    assert client.get(f"/api/v1/conversations/{cid}").status_code == 404
    print("  PASS: rename_and_delete")


def test_unknown_conversation_404(client):
    assert client.get("/api/v1/conversations/missing").status_code == 404
    assert client.patch("/api/v1/conversations/missing", json={"title": "x"}).status_code == 404
    assert client.delete("/api/v1/conversations/missing").status_code == 404
    assert client.post(
        "/api/v1/conversations/missing/messages", json={"role": "user", "content": "x"},
    ).status_code == 404
    print("  PASS: unknown_conversation_404")
