"""Tests for HttpClient — mocked HTTP responses."""

import json

import httpx
import pytest

from src.cli.http_client import HttpClient
from src.cli.protocol import (
    AuthenticationMissingError,
    FileKind,
    MessageRole,
    TaurusClientError,
)

BASE_URL = "http://127.0.0.1:5000"


class FakeTransport(httpx.AsyncBaseTransport):
    """Mock transport that returns canned responses and records requests."""

    def __init__(self, responses: dict[str, tuple[int, object]]):
        self._responses = responses
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request):
        await request.aread()
        self.requests.append(request)
        key = f"{request.method} {request.url.path}"
        if key in self._responses:
            status, body = self._responses[key]
            if isinstance(body, str):
                return httpx.Response(status, text=body, request=request)
            return httpx.Response(status, json=body, request=request)
        return httpx.Response(404, json={"error": "not found"}, request=request)


class FailingTransport(httpx.AsyncBaseTransport):
    """Transport whose every request fails to connect."""

    async def handle_async_request(self, request):
        raise httpx.ConnectError("connection refused", request=request)


def _make_client(responses: dict, token: str = "tok-123") -> tuple[HttpClient, FakeTransport]:
    """Create HttpClient with mocked transport."""
    client = HttpClient(base_url=BASE_URL, token=token)
    transport = FakeTransport(responses)
    client._client = httpx.AsyncClient(
        transport=transport,
        base_url=BASE_URL,
        headers={"Authorization": f"Bearer {token}"},
    )
    return client, transport


SESSION_JSON = {
    "id": "s1",
    "userId": "u1",
    "title": "Trip",
    "createdAt": "2026-02-16T10:00:00Z",
    "messages": [
        {"id": "m1", "role": "user", "content": "hi", "aiModelId": "m1",
         "createdAt": "2026-02-16T10:00:01Z"},
        {"id": "m2", "role": "ai", "content": "hello", "aiModelId": "m1",
         "createdAt": "2026-02-16T10:00:02.500Z"},
    ],
}


class TestSessions:
    """Tests for session endpoints."""

    @pytest.mark.asyncio
    async def test_list_sessions(self):
        """Parses the {data: [...]} envelope."""
        client, _ = _make_client({"GET /api/chat": (200, {"data": [SESSION_JSON]})})
        sessions = await client.list_sessions()
        assert [s.id for s in sessions] == ["s1"]
        assert sessions[0].owner_id == "u1"

    @pytest.mark.asyncio
    async def test_get_session_maps_ai_role(self):
        """The backend's "ai" role parses as assistant."""
        client, _ = _make_client({"GET /api/chat/s1": (200, SESSION_JSON)})
        session = await client.get_session("s1")
        assert [m.role for m in session.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert session.messages[1].created_at > session.messages[0].created_at

    @pytest.mark.asyncio
    async def test_create_session_sends_client_id(self):
        """POST carries the client-assigned id, owner, and title."""
        client, transport = _make_client({"POST /api/chat": (201, {"id": "s9"})})
        session = await client.create_session("s9", "u1", "Hello")
        body = json.loads(transport.requests[0].content)
        assert body == {"id": "s9", "userId": "u1", "title": "Hello"}
        assert session.title == "Hello"

    @pytest.mark.asyncio
    async def test_send_message_body(self):
        client, transport = _make_client({"POST /api/chat/s1/messages": (200, {"success": True})})
        await client.send_message("s1", "hi", "m1", agent_id="a1")
        body = json.loads(transport.requests[0].content)
        assert body == {"content": "hi", "aiModelId": "m1", "aiAgentId": "a1"}

    @pytest.mark.asyncio
    async def test_send_message_omits_missing_agent(self):
        client, transport = _make_client({"POST /api/chat/s1/messages": (200, {})})
        await client.send_message("s1", "hi", "m1")
        assert "aiAgentId" not in json.loads(transport.requests[0].content)

    @pytest.mark.asyncio
    async def test_delete_session(self):
        client, transport = _make_client({"DELETE /api/chat/s1": (200, {"success": True})})
        await client.delete_session("s1")
        assert transport.requests[0].method == "DELETE"


class TestErrors:
    """Tests for error mapping."""

    @pytest.mark.asyncio
    async def test_error_detail_from_body(self):
        """Non-2xx responses raise with the body's error message."""
        client, _ = _make_client({"GET /api/chat/s1": (500, {"error": "db down"})})
        with pytest.raises(TaurusClientError) as exc_info:
            await client.get_session("s1")
        assert exc_info.value.message == "db down"
        assert exc_info.value.status_code == 500
        assert exc_info.value.is_network_error is False

    @pytest.mark.asyncio
    async def test_plain_text_error(self):
        client, _ = _make_client({"GET /api/models": (502, "Bad Gateway")})
        with pytest.raises(TaurusClientError) as exc_info:
            await client.list_models()
        assert exc_info.value.message == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        """Transport errors raise with no status code."""
        client = HttpClient(base_url=BASE_URL, token="tok")
        client._client = httpx.AsyncClient(transport=FailingTransport(), base_url=BASE_URL)
        with pytest.raises(TaurusClientError) as exc_info:
            await client.list_sessions()
        assert exc_info.value.is_network_error is True

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client, _ = _make_client({"GET /api/chat/s1": (200, "<html>")})
        with pytest.raises(TaurusClientError):
            await client.get_session("s1")

    @pytest.mark.asyncio
    async def test_bad_timestamp_in_session(self):
        """An unparseable createdAt surfaces as TaurusClientError."""
        message = dict(SESSION_JSON["messages"][0], createdAt="not-a-date")
        bad = dict(SESSION_JSON, messages=[message])
        client, _ = _make_client({"GET /api/chat/s1": (200, bad)})
        with pytest.raises(TaurusClientError) as exc_info:
            await client.get_session("s1")
        assert "Malformed session" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_record_missing_id(self):
        client, _ = _make_client({"GET /api/models": (200, {"models": [{"name": "GPT"}]})})
        with pytest.raises(TaurusClientError):
            await client.list_models()

    @pytest.mark.asyncio
    async def test_record_of_wrong_shape(self):
        client, _ = _make_client({"GET /api/chat": (200, {"data": ["s1"]})})
        with pytest.raises(TaurusClientError):
            await client.list_sessions()

    @pytest.mark.asyncio
    async def test_missing_token_sends_nothing(self):
        """Without a token no request leaves the client."""
        client, transport = _make_client({}, token="")
        with pytest.raises(AuthenticationMissingError):
            await client.list_sessions()
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_not_opened(self):
        client = HttpClient(base_url=BASE_URL, token="tok")
        with pytest.raises(TaurusClientError):
            await client.list_sessions()


class TestCatalog:
    """Tests for model and agent listings."""

    @pytest.mark.asyncio
    async def test_list_models(self):
        client, _ = _make_client({"GET /api/models": (200, {"models": [
            {"id": "1", "name": "Sonnet", "provider": "Anthropic", "modelId": "claude-sonnet"},
        ]})})
        [model] = await client.list_models()
        assert model.model_id == "claude-sonnet"

    @pytest.mark.asyncio
    async def test_list_agents(self):
        client, _ = _make_client({"GET /api/agents": (200, {"agents": [
            {"id": "a1", "name": "Researcher", "type": "research"},
        ]})})
        [agent] = await client.list_agents()
        assert agent.type == "research"


class TestProviders:
    """Tests for provider authorization endpoints."""

    @pytest.mark.asyncio
    async def test_auth_status(self):
        client, _ = _make_client({"GET /api/github/auth/status": (200, {"authorized": True})})
        assert await client.get_auth_status("github") is True

    @pytest.mark.asyncio
    async def test_start_auth(self):
        client, _ = _make_client({"GET /api/gdrive/auth": (200, {
            "success": True, "authRequired": True, "authUrl": "https://accounts/x",
        })})
        result = await client.start_auth("gdrive")
        assert result.auth_required is True
        assert result.auth_url == "https://accounts/x"

    @pytest.mark.asyncio
    async def test_disconnect(self):
        client, transport = _make_client({"POST /api/gdocs/disconnect": (200, {"success": True})})
        await client.disconnect_provider("gdocs")
        assert transport.requests[0].url.path == "/api/gdocs/disconnect"


class TestFiles:
    """Tests for file endpoints."""

    @pytest.mark.asyncio
    async def test_upload_multipart(self, tmp_path):
        """Files go out as multipart entries named "files" plus the session id."""
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        client, transport = _make_client({"POST /api/files/upload": (200, {
            "success": True,
            "files": [{"id": "f1", "originalName": "notes.txt", "mimeType": "text/plain",
                       "size": 5, "type": "text", "hasFullContent": True}],
            "errors": [],
        })})

        result = await client.upload_files("s1", [path])
        assert result.success is True
        assert result.files[0].kind is FileKind.TEXT
        request = transport.requests[0]
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="sessionId"' in request.content
        assert b'name="files"; filename="notes.txt"' in request.content

    @pytest.mark.asyncio
    async def test_remove_file_body(self):
        client, transport = _make_client({"DELETE /api/files/remove": (200, {"success": True})})
        await client.remove_file("s1", "f1")
        assert json.loads(transport.requests[0].content) == {"sessionId": "s1", "fileId": "f1"}

    @pytest.mark.asyncio
    async def test_list_session_files(self):
        client, _ = _make_client({"GET /api/files/session/s1": (200, {
            "success": True,
            "files": [{"id": "f1", "originalName": "a.bin", "type": "weird", "size": 1}],
        })})
        [descriptor] = await client.list_session_files("s1")
        assert descriptor.kind is FileKind.UNKNOWN


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_sets_bearer(self):
        async with HttpClient(base_url=BASE_URL, token="abc") as client:
            assert client._client.headers["Authorization"] == "Bearer abc"
        assert client._client is None
