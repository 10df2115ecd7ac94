from mentorhub.core import database
from mentorhub.core.errors import AppError
from mentorhub.models.chat_message import ChatMessage
from mentorhub.services.llm_service import llm_service


def fake_mentor(monkeypatch, reply="Keep going!"):
    calls = []

    def complete(messages, **kwargs):
        calls.append(messages)
        return reply

    monkeypatch.setattr(llm_service, "complete", complete)
    return calls


def test_chat_stores_both_turns(client, auth_headers, monkeypatch):
    calls = fake_mentor(monkeypatch)

    response = client.post("/api/ai/chat", json={"message": "How do I learn SQL?"}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Keep going!", "role": "mentor"}
    assert calls[0][0]["role"] == "system"
    assert calls[0][-1] == {"role": "user", "content": "How do I learn SQL?"}

    history = client.get("/api/ai/messages", headers=auth_headers).json()["messages"]
    assert [(m["role"], m["content"]) for m in history] == [
        ("user", "How do I learn SQL?"),
        ("mentor", "Keep going!"),
    ]


def test_chat_context_is_last_ten_messages(client, auth_headers, monkeypatch):
    calls = fake_mentor(monkeypatch)
    for index in range(6):
        client.post("/api/ai/chat", json={"message": f"question {index}"}, headers=auth_headers)

    conversation = calls[-1][1:]

    assert len(conversation) == 10
    assert conversation[-1]["content"] == "question 5"
    assert {"role": "assistant", "content": "Keep going!"} in conversation
    assert all(turn["role"] in ("user", "assistant") for turn in conversation)


def test_empty_reply_gets_fallback(client, auth_headers, monkeypatch):
    fake_mentor(monkeypatch, reply="")

    response = client.post("/api/ai/chat", json={"message": "hello"}, headers=auth_headers)

    assert response.json()["message"] == "I apologize, but I could not generate a response."


def test_chat_rejects_empty_message(client, auth_headers):
    response = client.post("/api/ai/chat", json={"message": ""}, headers=auth_headers)

    assert response.status_code == 400


def test_chat_without_api_key_is_503(client, auth_headers):
    response = client.post("/api/ai/chat", json={"message": "hello"}, headers=auth_headers)

    assert response.status_code == 503
    assert "OPENAI_API_KEY" in response.json()["error"]
    with database.session_scope() as db:
        assert db.query(ChatMessage).count() == 0


def test_messages_limit_returns_latest_oldest_first(client, auth_headers, monkeypatch):
    fake_mentor(monkeypatch)
    for index in range(3):
        client.post("/api/ai/chat", json={"message": f"q{index}"}, headers=auth_headers)

    history = client.get("/api/ai/messages", params={"limit": 2}, headers=auth_headers).json()["messages"]

    assert [m["content"] for m in history] == ["q2", "Keep going!"]


def test_messages_limit_bounds(client, auth_headers):
    assert client.get("/api/ai/messages", params={"limit": 0}, headers=auth_headers).status_code == 400
    assert client.get("/api/ai/messages", params={"limit": 501}, headers=auth_headers).status_code == 400


def test_model_info(client, auth_headers):
    response = client.get("/api/ai/model", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["model"] == "gpt-4o-mini"
    assert response.json()["fixed"] is False


def test_failed_mentor_call_leaves_no_orphan_question(client, auth_headers, monkeypatch):
    fake_mentor(monkeypatch)
    client.post("/api/ai/chat", json={"message": "first"}, headers=auth_headers)

    def rate_limited(messages, **kwargs):
        raise AppError(429, "OpenAI API rate limit exceeded. Please try again later.")

    monkeypatch.setattr(llm_service, "complete", rate_limited)
    failed = client.post("/api/ai/chat", json={"message": "lost"}, headers=auth_headers)

    calls = fake_mentor(monkeypatch)
    client.post("/api/ai/chat", json={"message": "second"}, headers=auth_headers)

    assert failed.status_code == 429
    history = client.get("/api/ai/messages", headers=auth_headers).json()["messages"]
    assert [m["content"] for m in history] == ["first", "Keep going!", "second", "Keep going!"]
    assert all(turn["content"] != "lost" for turn in calls[0])
