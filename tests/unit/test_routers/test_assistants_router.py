"""Unit tests for assistant and chat router endpoints."""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from agentdesk.api.routers import assistants as assistants_router
from agentdesk.api.routers import chat as chat_router
from agentdesk.api.services.assistant_service import AssistantService
from agentdesk.api.services.chat_service import ChatService

from conftest import ScriptedCompletion


@pytest.fixture
def client(memory_store, file_store):
    app = FastAPI()
    app.include_router(assistants_router.router)
    app.include_router(chat_router.router)
    app.dependency_overrides[assistants_router.get_assistant_service] = lambda: AssistantService(
        memory_store, file_store
    )
    app.dependency_overrides[chat_router.get_chat_service] = lambda: ChatService(
        memory_store, ScriptedCompletion(["Summary ready."]), file_store
    )
    with TestClient(app) as test_client:
        yield test_client


def test_list_and_get(client):
    assert [a["id"] for a in client.get("/api/assistants").json()] == [1, 2, 999999]
    assert client.get("/api/assistants/2").json()["title"] == "Kansai Translator"
    assert client.get("/api/assistants/42").status_code == 404


def test_create_update_summary_and_delete(client, memory_store):
    created = client.post("/api/assistants", json={"title": "Coder"})
    assert created.status_code == 201
    assert created.json()["id"] == 3

    response = client.put("/api/assistants/3", json={"system_prompt": "You write code."})
    assert response.json()["system_prompt"] == "You write code."

    response = client.put("/api/assistants/3/summary", json={"summary": "Writes Python"})
    assert response.json()["summary"] == "Writes Python"

    assert client.delete("/api/assistants/3").status_code == 200
    assert memory_store.get(3) is None
    assert client.delete("/api/assistants/999999").status_code == 400
    assert client.delete("/api/assistants/3").status_code == 404


def test_export_and_import(client):
    exported = client.get("/api/assistants/export", params={"ids": [1], "include_history": False}).json()
    assert [a["id"] for a in exported["agents"]] == [1]

    response = client.post(
        "/api/assistants/import",
        json={"raw": json.dumps(exported), "mode": "append"},
    )
    assert [a["id"] for a in response.json()] == [1, 2, 999999, 3]

    assert client.post("/api/assistants/import", json={"raw": "{broken"}).status_code == 400


def test_chat_turn_and_reset(client, memory_store):
    response = client.post("/api/chat/1/messages", json={"message": "Summarize this"})
    payload = response.json()
    assert payload["reply"] == "Summary ready."
    assert [m["role"] for m in payload["messages"]] == ["user", "assistant"]

    assert client.post("/api/chat/999999/messages", json={"message": "hi"}).status_code == 400
    assert client.post("/api/chat/42/messages", json={"message": "hi"}).status_code == 404

    assert client.delete("/api/chat/1/messages").status_code == 200
    assert memory_store.get(1).messages == []


def test_attach_knowledge_file(client, file_store, memory_store):
    file_store.files["/home/user/guide.pdf"] = "UEQ="

    response = client.post("/api/assistants/1/knowledge-files", json={"path": "/home/user/guide.pdf"})

    assert response.status_code == 200
    assert response.json()["knowledge_file_paths"] == ["data/files/guide.pdf"]
    assert memory_store.get(1).knowledge_file_paths == ["data/files/guide.pdf"]
    assert client.post("/api/assistants/1/knowledge-files", json={"path": "/missing.pdf"}).status_code == 400
    assert client.post("/api/assistants/42/knowledge-files", json={"path": "/home/user/guide.pdf"}).status_code == 404
