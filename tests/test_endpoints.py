"""Tests for API endpoints."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from gateway.main import create_app
from gateway.models.llm import CompletionResult
from tests.conftest import FakeChatProvider, FakeMediaProvider


class FakeStatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"upstream returned {status_code}")
        self.status_code = status_code


@pytest.fixture
def provider():
    return FakeChatProvider()


@pytest.fixture
def container(make_services, provider):
    return make_services(provider, media_provider=FakeMediaProvider())


@pytest.fixture
def client(container):
    return TestClient(create_app(container=container))


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["storage"] == "memory"
        assert data["knowledge_index"] is False
        assert "timestamp" in data

    def test_health_check_degraded_storage(self, client, container):
        """Test that an unreachable storage backend reports degraded."""
        container.storage.ping = AsyncMock(return_value=False)
        assert client.get("/health").json()["status"] == "degraded"

    def test_health_check_content_type(self, client):
        """Test that health check returns JSON content type."""
        response = client.get("/health")
        assert response.headers["content-type"] == "application/json"


class TestChatEndpoint:
    """Tests for the chat endpoint."""

    def test_chat_success_envelope(self, client, provider):
        """Test that a chat turn is wrapped in the success envelope."""
        provider.results.append(CompletionResult(content="Hi there!"))

        response = client.post("/api/chat", json={"prompt": "Hello", "conversationId": "c1"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["message"] == "Hi there!"
        assert body["data"]["conversationId"] == "c1"
        assert body["data"]["toolsUsed"] == []
        assert isinstance(body["meta"]["processingTime"], float | int)
        assert body["meta"]["requestId"] == response.headers["X-Request-ID"]

    def test_request_id_header_is_echoed(self, client):
        """Test that a caller-supplied request ID is kept."""
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_snake_case_fields_accepted(self, client, provider):
        """Test that requests may use field names as well as aliases."""
        provider.results.append(CompletionResult(content="ok"))
        response = client.post(
            "/api/chat", json={"prompt": "Hello", "conversation_id": "c1", "model_type": "simple"}
        )
        assert response.status_code == 200

    def test_missing_prompt(self, client):
        """Test that validation failures use the error envelope."""
        response = client.post("/api/chat", json={"conversationId": "c1"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert any(err["field"] == "prompt" for err in body["error"]["details"]["errors"])

    @pytest.mark.parametrize(
        "payload",
        [
            {"prompt": "   ", "conversationId": "c1"},
            {"prompt": "x" * 4001, "conversationId": "c1"},
            {"prompt": "Hi", "conversationId": "c1", "temperature": 3},
            {"prompt": "Hi", "conversationId": "c1", "modelType": "turbo"},
        ],
    )
    def test_invalid_requests(self, client, payload):
        """Test that invalid chat requests are rejected before any upstream call."""
        response = client.post("/api/chat", json=payload)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_upstream_rate_limit(self, client, provider):
        """Test that upstream errors map to their status codes."""
        provider.results.append(FakeStatusError(429))

        response = client.post("/api/chat", json={"prompt": "Hello", "conversationId": "c1"})

        assert response.status_code == 429
        error = response.json()["error"]
        assert error["code"] == "RATE_LIMIT_EXCEEDED"
        assert error["details"]["status"] == 429
        assert "timestamp" in error

    def test_unhandled_error(self, container):
        """Test that unexpected errors become INTERNAL_SERVER_ERROR."""
        container.orchestrator.send_message = AsyncMock(side_effect=RuntimeError("boom"))
        client = TestClient(create_app(container=container), raise_server_exceptions=False)

        response = client.post("/api/chat", json={"prompt": "Hello", "conversationId": "c1"})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "INTERNAL_SERVER_ERROR"

    def test_uncensored_chat_uses_simple_model(self, client, provider, container):
        """Test that the uncensored route always uses the simple model without tools."""
        provider.results.append(CompletionResult(content="Sure"))

        response = client.post("/api/chat/uncensored", json={"prompt": "Hello", "conversationId": "c1"})

        assert response.status_code == 200
        assert response.json()["data"]["modelUsed"] == container.selector.get_model_config("simple-chat").name
        assert provider.requests[0].tools is None


class TestMediaEndpoints:
    """Tests for media generation endpoints."""

    def test_audio(self, client):
        response = client.post("/api/chat/audio", json={"prompt": "Hello", "conversationId": "c1", "voice": "male"})

        assert response.status_code == 200
        media = response.json()["data"]["media"][0]
        assert media["type"] == "audio"
        assert media["metadata"]["voice"] == "male"

        served = client.get(media["url"])
        assert served.status_code == 200
        assert served.content == b"RIFF fake wav"

    def test_video_duration_bounds(self, client):
        response = client.post("/api/chat/video", json={"prompt": "waves", "conversationId": "c1", "duration": 11})
        assert response.status_code == 400

    def test_image_style_must_be_known(self, client):
        response = client.post("/api/chat/image", json={"prompt": "cat", "conversationId": "c1", "style": "noir"})
        assert response.status_code == 400


class TestConversationEndpoints:
    """Tests for conversation history endpoints."""

    def test_unknown_conversation(self, client):
        response = client.get("/api/conversations/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CONVERSATION_NOT_FOUND"

    def test_history_after_chat(self, client, provider):
        provider.results.append(CompletionResult(content="Hi there!"))
        client.post("/api/chat", json={"prompt": "Hello", "conversationId": "c1"})

        data = client.get("/api/conversations/c1").json()["data"]

        assert data["conversationId"] == "c1"
        assert data["totalMessages"] == 3
        assert [m["role"] for m in data["messages"]] == ["system", "user", "assistant"]

    def test_delete(self, client, provider):
        provider.results.append(CompletionResult(content="Hi"))
        client.post("/api/chat", json={"prompt": "Hello", "conversationId": "c1"})

        assert client.delete("/api/conversations/c1").json()["data"]["deleted"] is True
        assert client.get("/api/conversations/c1").status_code == 404


class TestModelsEndpoint:
    """Tests for the model catalog endpoint."""

    def test_lists_active_models(self, client, container):
        container.selector.update_model("claude-chat", {"is_active": False})

        models = client.get("/api/models").json()["data"]

        ids = [m["id"] for m in models]
        assert "simple-chat" in ids
        assert "claude-chat" not in ids


class TestMemoryEndpoints:
    """Tests for the memory tool endpoints."""

    def test_short_term_round_trip(self, client):
        stored = client.post(
            "/api/tools/memory/short-term", json={"conversationId": "c1", "key": "draft", "data": {"step": 2}}
        ).json()["data"]
        assert stored["key"] == "temp:c1:draft"

        found = client.post("/api/tools/memory/short-term/get", json={"conversationId": "c1", "key": "draft"}).json()
        assert found["data"] == {"key": "draft", "found": True, "data": {"step": 2}}

    def test_short_term_miss(self, client):
        found = client.post("/api/tools/memory/short-term/get", json={"conversationId": "c1", "key": "none"}).json()
        assert found["data"]["found"] is False

    def test_long_term_store_and_search(self, client):
        stored = client.post(
            "/api/tools/memory/long-term", json={"conversationId": "c1", "content": "I love hiking in the Alps"}
        ).json()["data"]
        assert stored["category"] == "preferences"

        results = client.post(
            "/api/tools/memory/long-term/search", json={"conversationId": "c1", "query": "hiking"}
        ).json()["data"]
        assert results["count"] == 1
        assert results["results"][0]["content"] == "I love hiking in the Alps"

    def test_long_term_requires_identity(self, client):
        response = client.post("/api/tools/memory/long-term", json={"content": "I love hiking"})
        assert response.status_code == 400

    def test_analyze(self, client):
        data = client.post("/api/tools/memory/analyze", json={"content": "My name is Ana"}).json()["data"]
        assert data["should_store"] is True
        assert data["category"] == "personal_info"


class TestDocsEndpoints:
    """Tests for API documentation endpoints."""

    def test_openapi_docs_available(self, client):
        """Test that OpenAPI documentation is available."""
        response = client.get("/docs")
        assert response.status_code == 200

    def test_openapi_json_available(self, client):
        """Test that OpenAPI JSON schema is available."""
        response = client.get("/openapi.json")
        assert response.status_code == 200

        schema = response.json()
        assert schema["info"]["title"] == "Multimodal Chat Gateway"
        assert "/api/chat" in schema["paths"]
