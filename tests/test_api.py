"""
Integration tests for the HTTP bridge endpoints.

Sessions run tests/fake_worker.py so replies are deterministic. The last tests
run the real worker module end to end, one of them against a local stub of the
Explorer API.
"""

import asyncio
import sys
import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient

from omics_mcp.api.routes import _sse_generator
from omics_mcp.main import app

FAKE_WORKER = [sys.executable, "-u", str(Path(__file__).parent / "fake_worker.py")]
REAL_WORKER = [sys.executable, "-u", "-m", "omics_mcp.mcp.server"]
MESSAGES = "/v1/omics-ai-mcp/messages"


def _client(command, timeout: float = 5.0):
    with patch("omics_mcp.main.WORKER_COMMAND", command), patch(
        "omics_mcp.main.SESSION_MESSAGE_TIMEOUT", timeout
    ):
        with TestClient(app) as client:
            yield client


@pytest.fixture
def client():
    yield from _client(FAKE_WORKER)


@pytest.fixture
def slow_client():
    yield from _client(FAKE_WORKER, timeout=0.5)


def test_health_reports_active_sessions(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "omics-ai-mcp", "version": "1.0.0", "activeSessions": 0}
    client.post("/session")
    assert client.get("/").json()["activeSessions"] == 1


def test_session_lifecycle(client: TestClient) -> None:
    created = client.post("/session")
    assert created.status_code == 200
    session_id = created.json()["sessionId"]

    assert client.get("/sessions").json() == {"sessions": [{"id": session_id, "active": True}]}

    message = {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}
    reply = client.post(f"/session/{session_id}/message", json={"message": message})
    assert reply.status_code == 200
    assert reply.json()["result"]["echo"] == message

    closed = client.delete(f"/session/{session_id}")
    assert closed.status_code == 200
    assert closed.json() == {"message": "Session closed"}
    assert client.get("/sessions").json() == {"sessions": []}

    again = client.delete(f"/session/{session_id}")
    assert again.status_code == 404
    assert again.json() == {"error": "Session not found"}

    gone = client.post(f"/session/{session_id}/message", json={"message": message})
    assert gone.status_code == 404


def test_message_to_unknown_session(client: TestClient) -> None:
    response = client.post("/session/does-not-exist/message", json={"message": {"id": 1}})
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


def test_message_required(client: TestClient) -> None:
    session_id = client.post("/session").json()["sessionId"]
    response = client.post(f"/session/{session_id}/message", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "Message is required"}


def test_message_without_body_on_unknown_session_is_404(client: TestClient) -> None:
    response = client.post("/session/does-not-exist/message")
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}

    garbage = client.post(
        "/session/does-not-exist/message", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert garbage.status_code == 404


def test_message_without_body_on_live_session_is_400(client: TestClient) -> None:
    session_id = client.post("/session").json()["sessionId"]
    url = f"/session/{session_id}/message"

    empty = client.post(url)
    assert empty.status_code == 400
    assert empty.json() == {"error": "Message is required"}

    garbage = client.post(url, content=b"{not json", headers={"Content-Type": "application/json"})
    assert garbage.status_code == 400
    assert set(garbage.json()) == {"error"}

    not_an_object = client.post(url, json=[1, 2, 3])
    assert not_an_object.status_code == 400
    assert not_an_object.json() == {"error": "Message is required"}

    # Session survives the bad requests
    reply = client.post(url, json={"message": {"jsonrpc": "2.0", "id": 1, "method": "ping"}})
    assert reply.status_code == 200


def test_timeout_returns_504(slow_client: TestClient) -> None:
    session_id = slow_client.post("/session").json()["sessionId"]
    response = slow_client.post(f"/session/{session_id}/message", json={"message": {"id": 1, "method": "silent"}})
    assert response.status_code == 504
    assert response.json() == {"error": "Request timeout"}


def test_spawn_failure_returns_500() -> None:
    for client in _client(["/nonexistent/omics-worker-binary"]):
        response = client.post("/session")
        assert response.status_code == 500
        assert "Failed to start MCP server process" in response.json()["error"]
        assert client.get("/").status_code == 200


def test_messages_endpoint_creates_session_lazily(client: TestClient) -> None:
    message = {"jsonrpc": "2.0", "id": 5, "method": "ping"}
    response = client.post(f"{MESSAGES}?sessionId=lazy-1", json=message)
    assert response.status_code == 200
    assert response.json()["id"] == 5
    assert response.headers["access-control-allow-origin"] == "*"
    assert client.get("/sessions").json() == {"sessions": [{"id": "lazy-1", "active": True}]}

    second = client.post(f"{MESSAGES}?sessionId=lazy-1", json={"jsonrpc": "2.0", "id": 6, "method": "ping"})
    assert second.json()["id"] == 6
    assert len(client.get("/sessions").json()["sessions"]) == 1


def test_messages_endpoint_requires_session_id(client: TestClient) -> None:
    response = client.post(MESSAGES, json={"id": 1})
    assert response.status_code == 400
    assert response.json() == {"error": "sessionId query parameter is required"}
    assert response.headers["access-control-allow-origin"] == "*"


def test_messages_endpoint_rejects_invalid_json(client: TestClient) -> None:
    response = client.post(f"{MESSAGES}?sessionId=x", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_messages_options_preflight(client: TestClient) -> None:
    response = client.options(MESSAGES)
    assert response.status_code == 200
    assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
    assert response.headers["access-control-allow-headers"] == "Content-Type, Authorization"


def test_sse_announces_endpoint_then_keepalives() -> None:
    async def scenario():
        stream = _sse_generator("abc-123", keepalive_interval=0.01)
        first = await stream.__anext__()
        second = await stream.__anext__()
        await stream.aclose()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == "event: endpoint\ndata: /v1/omics-ai-mcp/messages?sessionId=abc-123\n\n"
    assert second == ": keepalive\n\n"


def test_shutdown_terminates_workers() -> None:
    for client in _client(FAKE_WORKER):
        client.post("/session")
        client.post("/session")
        registry = app.state.registry
        processes = [s.process for s in registry._sessions.values()]
    assert len(processes) == 2
    assert all(p.returncode is not None for p in processes)
    assert len(registry) == 0


def test_real_worker_round_trip() -> None:
    for client in _client(REAL_WORKER, timeout=20.0):
        session_id = client.post("/session").json()["sessionId"]
        url = f"/session/{session_id}/message"

        init = client.post(url, json={"message": {"jsonrpc": "2.0", "id": 0, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}}})
        assert init.json()["result"]["serverInfo"]["name"] == "omics-ai-mcp"

        tools = client.post(url, json={"message": {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}})
        assert len(tools.json()["result"]["tools"]) == 6

        call = client.post(
            url,
            json={
                "message": {
                    "jsonrpc": "2.0",
                    "id": 2,
                    "method": "tools/call",
                    "params": {"name": "not_a_tool", "arguments": {"network": "viral"}},
                }
            },
        )
        assert call.status_code == 200
        assert call.json()["id"] == 2
        assert call.json()["result"]["content"][0]["text"] == "Error: Unknown tool: not_a_tool"


def _stub_explorer() -> FastAPI:
    stub = FastAPI()
    stub.state.requests = []

    @stub.post("/api/collections/{slug}/tables/{table}/filter/count")
    async def count(slug: str, table: str, request: Request) -> PlainTextResponse:
        stub.state.requests.append((slug, table, await request.json()))
        return PlainTextResponse('{"status": "running"}\n{"count": 123456}\n')

    return stub


@pytest.fixture
def explorer_url(monkeypatch):
    """Serve a stub Explorer API on an ephemeral local port for the worker subprocess."""
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    stub = _stub_explorer()
    server = uvicorn.Server(uvicorn.Config(stub, host="127.0.0.1", port=0, log_level="warning"))
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    deadline = time.monotonic() + 10
    while not server.started:
        if time.monotonic() > deadline:
            raise RuntimeError("stub Explorer did not start")
        time.sleep(0.05)
    port = server.servers[0].sockets[0].getsockname()[1]
    yield f"http://127.0.0.1:{port}", stub
    server.should_exit = True
    thread.join(timeout=10)


def test_count_rows_through_session(explorer_url) -> None:
    url, stub = explorer_url
    for client in _client(REAL_WORKER, timeout=20.0):
        session_id = client.post("/session").json()["sessionId"]
        reply = client.post(
            f"/session/{session_id}/message",
            json={
                "message": {
                    "jsonrpc": "2.0",
                    "id": 42,
                    "method": "tools/call",
                    "params": {
                        "name": "count_rows",
                        "arguments": {
                            "network": url,
                            "collection_slug": "virusseq",
                            "table_name": "samples",
                            "filters": {"country": "Canada"},
                        },
                    },
                }
            },
        )
        assert reply.status_code == 200
        assert reply.json()["id"] == 42
        assert reply.json()["result"]["content"][0]["text"] == (
            "Count result: 123,456 rows in 'samples' matching the specified filters"
        )
    assert stub.state.requests == [("virusseq", "samples", {"filters": {"country": "Canada"}})]
