from conftest import CALLER_HEADERS, CLIENT_ID, GUEST_JOHN_ID, OTHER_COMPANY_ID, USER_ID
from fastapi.testclient import TestClient

from app.models.memory import RecentEntity


def _add_jane(test_client: TestClient) -> dict:
    response = test_client.post(
        "/api/assistant/tool-call",
        headers=CALLER_HEADERS,
        json={
            "toolCall": {"name": "add_guest", "arguments": {"firstName": "Jane", "lastName": "Doe"}},
            "clientId": CLIENT_ID,
        },
    )
    assert response.status_code == 200
    return response.json()


def test_identity_headers_are_required(test_client: TestClient):
    no_user = test_client.post("/api/assistant/tool-call", json={"toolCall": {"name": "get_guest_stats"}})
    no_company = test_client.post(
        "/api/assistant/tool-call",
        headers={"X-User-ID": USER_ID},
        json={"toolCall": {"name": "get_guest_stats"}},
    )

    assert no_user.status_code == 401
    assert no_user.json()["detail"] == "Missing X-User-ID header"
    assert no_company.status_code == 401
    assert no_company.json()["detail"] == "Missing X-Company-ID header"


def test_tool_call_returns_confirmation_payload(test_client: TestClient):
    body = _add_jane(test_client)

    assert body["type"] == "confirmation_required"
    assert body["pendingCallId"]
    assert body["preview"]["toolName"] == "add_guest"
    assert body["preview"]["requiresConfirmation"] is True
    assert "error" not in body


def test_confirm_round_trip(test_client: TestClient, executor):
    proposed = _add_jane(test_client)

    response = test_client.post(
        "/api/assistant/confirm",
        headers=CALLER_HEADERS,
        json={"pendingCallId": proposed["pendingCallId"], "toolName": "add_guest", "clientId": CLIENT_ID},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "response"
    assert body["content"] == "Added Jane Doe to the guest list."
    assert body["data"]["name"] == "Jane Doe"
    assert len(executor.executed) == 1


def test_confirm_unknown_id_is_an_error_response(test_client: TestClient):
    response = test_client.post(
        "/api/assistant/confirm",
        headers=CALLER_HEADERS,
        json={"pendingCallId": "missing", "toolName": "add_guest"},
    )

    assert response.status_code == 200
    assert response.json()["type"] == "error"
    assert response.json()["errorCode"] == "not_found"


def test_cancel_twice_succeeds(test_client: TestClient, pending_store):
    proposed = _add_jane(test_client)

    for _ in range(2):
        response = test_client.post(
            "/api/assistant/cancel",
            headers=CALLER_HEADERS,
            json={"pendingCallId": proposed["pendingCallId"]},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Action cancelled"}
    assert len(pending_store) == 0


def test_cancel_from_other_company_is_forbidden(test_client: TestClient):
    proposed = _add_jane(test_client)

    response = test_client.post(
        "/api/assistant/cancel",
        headers={"X-User-ID": USER_ID, "X-Company-ID": OTHER_COMPANY_ID},
        json={"pendingCallId": proposed["pendingCallId"]},
    )

    assert response.status_code == 403


def test_chat_plain_response(test_client: TestClient):
    response = test_client.post(
        "/api/assistant/chat",
        headers=CALLER_HEADERS,
        json={"messages": [{"role": "user", "content": "Hello"}], "clientId": CLIENT_ID},
    )

    assert response.status_code == 200
    assert response.json() == {"type": "response", "content": "Hello! How can I help with the wedding?"}


def test_chat_requires_messages(test_client: TestClient):
    response = test_client.post("/api/assistant/chat", headers=CALLER_HEADERS, json={"messages": []})

    assert response.status_code == 422


def test_chat_query_tool_answers_directly(test_client: TestClient, llm):
    llm.reply_with_tool("get_guest_stats", "{}")

    response = test_client.post(
        "/api/assistant/chat",
        headers=CALLER_HEADERS,
        json={
            "messages": [{"role": "user", "content": "How many guests confirmed?"}],
            "pathname": f"/en/dashboard/clients/{CLIENT_ID}",
        },
    )

    assert response.json()["type"] == "response"
    assert response.json()["content"] == "42 guests have confirmed."


def test_memory_read_and_clear(test_client: TestClient, memory_service):
    memory_service.update(
        USER_ID,
        CLIENT_ID,
        topic="update guest rsvp",
        entity=RecentEntity(type="guest", id=GUEST_JOHN_ID, name="John Smith"),
    )

    response = test_client.get("/api/assistant/memory", headers=CALLER_HEADERS, params={"clientId": CLIENT_ID})
    body = response.json()
    assert response.status_code == 200
    assert body["lastTopics"] == ["update guest rsvp"]
    assert body["recentEntities"][0]["name"] == "John Smith"
    assert body["messageCount"] == 1

    cleared = test_client.delete("/api/assistant/memory", headers=CALLER_HEADERS, params={"clientId": CLIENT_ID})
    assert cleared.status_code == 204
    assert memory_service.peek(USER_ID, CLIENT_ID) is None
