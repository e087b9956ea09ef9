"""
API integration tests using FastAPI TestClient over a temporary SQLite database.
"""
import json
import time

import pytest
from fastapi.testclient import TestClient

from api.services.recommendation_service import RECOMMENDATION_EVENT
from infra.vector.store import SearchResult


def _chat_body(text: str = "What is a closure?", lesson_id: str = "l1") -> dict:
    return {
        "lessonId": lesson_id,
        "messages": [{"id": "user-1", "role": "user", "parts": [{"type": "text", "text": text}]}],
    }


def _sse_events(body: str) -> list:
    events = []
    for block in body.split("\n\n"):
        if not block.startswith("data: "):
            continue
        data = block[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


def _wait_for(predicate, timeout: float = 2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        value = predicate()
        if value:
            return value
        time.sleep(0.02)
    return predicate()


@pytest.mark.integration
class TestHealthRoutes:
    """Health and root endpoints (no auth)."""

    def test_root_returns_healthy(self, api_client: TestClient):
        response = api_client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "Genii API is Healthy"}

    def test_request_id_echoed(self, api_client: TestClient):
        response = api_client.get("/", headers={"x-request-id": "req-123"})
        assert response.headers["x-request-id"] == "req-123"


@pytest.mark.integration
class TestAuth:
    def test_missing_token(self, api_client: TestClient):
        response = api_client.post("/api/chat", json=_chat_body())
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "AUTH_REQUIRED", "message": "Missing token"},
        }

    def test_bad_signature(self, api_client: TestClient, make_token):
        headers = {"Authorization": f"Bearer {make_token(secret='someone-else')}"}
        assert api_client.get("/api/chat/l1/history", headers=headers).status_code == 401

    def test_session_cookie_accepted(self, api_client: TestClient, make_token):
        api_client.cookies.set("__session", make_token())
        assert api_client.get("/api/chat/l1/history").status_code == 200

    def test_unknown_subject(self, api_client: TestClient, make_token):
        headers = {"Authorization": f"Bearer {make_token(sub='ext_nobody')}"}
        response = api_client.get("/api/chat/l1/history", headers=headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.integration
class TestChatRoutes:
    def test_stream_then_history(self, api_client: TestClient, auth_headers, services, fake_store):
        fake_store.results["lesson"] = [
            SearchResult(id="l1#0", score=0.8, content="A closure keeps its lexical scope.", metadata={"id": "l1"})
        ]

        response = api_client.post("/api/chat", json=_chat_body(), headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-vercel-ai-ui-message-stream"] == "v1"
        events = _sse_events(response.text)
        assert events[0]["type"] == "start"
        message_id = events[0]["messageId"]
        deltas = [e["delta"] for e in events if isinstance(e, dict) and e["type"] == "text-delta"]
        assert "".join(deltas) == "Closures capture their surrounding scope."
        assert all(e["id"] == message_id for e in events if isinstance(e, dict) and e["type"] == "text-delta")
        assert events[-2] == {"type": "finish"}
        assert events[-1] == "[DONE]"

        stored = _wait_for(lambda: len(services.chat_messages.history("u1", "l1")) == 2)
        assert stored

        history = api_client.get("/api/chat/l1/history", headers=auth_headers)
        assert history.status_code == 200
        messages = history.json()["data"]["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[0]["parts"] == [{"type": "text", "text": "What is a closure?"}]
        assert messages[1]["id"] == message_id
        assert messages[1]["metadata"]["model"] == "fake-model"

    def test_mid_stream_failure_ends_with_error_event(self, api_client: TestClient, auth_headers, fake_generator, services):
        fake_generator.fail_after = 2

        response = api_client.post("/api/chat", json=_chat_body(), headers=auth_headers)

        events = _sse_events(response.text)
        assert events[-2] == {"type": "error", "errorText": "Generation failed mid-stream"}
        assert events[-1] == "[DONE]"
        assert [m.role for m in services.chat_messages.history("u1", "l1")] == ["user"]

    def test_setup_failure_returns_json_error(self, api_client: TestClient, auth_headers, fake_generator, services):
        fake_generator.fail_on_open = ConnectionError("ollama unreachable")

        response = api_client.post("/api/chat", json=_chat_body(), headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "AI_SERVICE_ERROR"
        assert "details" not in response.json()["error"]
        assert [m.role for m in services.chat_messages.history("u1", "l1")] == ["user"]

    def test_unknown_lesson(self, api_client: TestClient, auth_headers):
        response = api_client.post("/api/chat", json=_chat_body(lesson_id="missing"), headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Lesson with id missing not found"

    def test_invalid_body(self, api_client: TestClient, auth_headers):
        response = api_client.post("/api/chat", json={"lessonId": "l1", "messages": []}, headers=auth_headers)
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"]

    def test_empty_text(self, api_client: TestClient, auth_headers):
        body = {"lessonId": "l1", "messages": [{"id": "u", "role": "user", "parts": [{"type": "step-start"}]}]}
        response = api_client.post("/api/chat", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "No message content provided"

    def test_close_session(self, api_client: TestClient, auth_headers, services):
        api_client.post("/api/chat", json=_chat_body(), headers=auth_headers)
        _wait_for(lambda: len(services.chat_messages.history("u1", "l1")) == 2)

        response = api_client.post("/api/chat/l1/close", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "closed"
        assert api_client.get("/api/chat/l1/history", headers=auth_headers).json()["data"]["messages"] == []
        assert api_client.post("/api/chat/l1/close", headers=auth_headers).status_code == 404


@pytest.mark.integration
class TestRecommendationRoutes:
    def test_request_then_read(self, api_client: TestClient, auth_headers, fake_store, services):
        fake_store.results["course"] = [
            SearchResult(id="c1#0", score=0.85, content="", metadata={"id": "c1", "type": "course"})
        ]

        response = api_client.post("/api/recommendations", json={"query": "javascript closures"}, headers=auth_headers)

        assert response.status_code == 202
        data = response.json()["data"]
        assert data["status"] == "processing"
        assert data["jobId"]

        def completed():
            record = services.recommendation_records.get_for_user("u1")
            return record if record is not None and record.status == "completed" else None

        record = _wait_for(completed)
        assert record.course_ids == ["c1"]

        got = api_client.get("/api/recommendations", headers=auth_headers)
        assert got.status_code == 200
        assert got.json()["data"]["courseIds"] == ["c1"]
        assert "highly relevant" in got.json()["data"]["reason"]

    def test_query_too_short(self, api_client: TestClient, auth_headers):
        response = api_client.post("/api/recommendations", json={"query": "js"}, headers=auth_headers)
        assert response.status_code == 422

    def test_nothing_requested_yet(self, api_client: TestClient, auth_headers):
        assert api_client.get("/api/recommendations", headers=auth_headers).status_code == 404


@pytest.mark.integration
class TestEventRoutes:
    def test_lesson_completed(self, api_client: TestClient, auth_headers):
        response = api_client.post(
            "/api/events",
            json={"eventType": "lesson_completed", "contentId": "l1", "timeSpent": 20},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["xpGained"] == 50

    def test_unknown_event_type_rejected(self, api_client: TestClient, auth_headers):
        response = api_client.post("/api/events", json={"eventType": "video_watched"}, headers=auth_headers)
        assert response.status_code == 422

    def test_missing_content_id(self, api_client: TestClient, auth_headers):
        response = api_client.post("/api/events", json={"eventType": "quiz_completed"}, headers=auth_headers)
        assert response.status_code == 400


@pytest.mark.integration
class TestJobRoutes:
    def test_requires_secret(self, api_client: TestClient):
        response = api_client.post(f"/api/jobs/{RECOMMENDATION_EVENT}", json={"query": "python", "userId": "u1"})
        assert response.status_code == 403
        wrong = api_client.post(
            f"/api/jobs/{RECOMMENDATION_EVENT}",
            json={"query": "python", "userId": "u1"},
            headers={"x-job-secret": "nope"},
        )
        assert wrong.status_code == 403

    def test_non_ascii_secret_is_rejected(self, api_client: TestClient):
        response = api_client.post(
            f"/api/jobs/{RECOMMENDATION_EVENT}",
            json={"query": "python", "userId": "u1"},
            headers={"x-job-secret": "j\u00f6b-secret".encode("latin-1")},
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "ACCESS_DENIED"

    def test_runs_recommendation_job(self, api_client: TestClient):
        response = api_client.post(
            f"/api/jobs/{RECOMMENDATION_EVENT}",
            json={"query": "python", "userId": "u1"},
            headers={"x-job-secret": "job-secret"},
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"status": "completed", "courseIds": []}

    def test_user_created_job(self, api_client: TestClient, services):
        response = api_client.post(
            "/api/jobs/clerk/user.created",
            json={"data": {"id": "user_77", "email_addresses": [{"email_address": "x@example.com"}]}},
            headers={"x-job-secret": "job-secret"},
        )
        assert response.status_code == 200
        assert services.users.get_by_external_id("user_77") is not None

    def test_unknown_job(self, api_client: TestClient):
        response = api_client.post("/api/jobs/unknown/event", json={}, headers={"x-job-secret": "job-secret"})
        assert response.status_code == 404
