"""
Tests for the stdio MCP worker: framing, routing and the always-answer contract.
"""

import io
import json
from unittest.mock import patch

import pytest

from omics_mcp.mcp.server import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SUPPORTED_PROTOCOL_VERSIONS,
    McpServer,
    negotiate_protocol_version,
)


def _serve(*messages, execute=None) -> list[dict]:
    """Feed lines (dicts are JSON-encoded) to a server and return the decoded replies."""
    lines = []
    for m in messages:
        lines.append(m if isinstance(m, bytes) else (json.dumps(m) + "\n").encode())
    out = io.StringIO()
    server = McpServer(out, execute=execute) if execute else McpServer(out)
    server.serve(io.BytesIO(b"".join(lines)))
    text = out.getvalue()
    assert text == "" or text.endswith("\n")
    return [json.loads(line) for line in text.splitlines()]


def test_initialize_echoes_supported_version() -> None:
    [reply] = _serve({"jsonrpc": "2.0", "id": 0, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}})
    assert reply["id"] == 0
    assert reply["result"]["protocolVersion"] == "2024-11-05"
    assert reply["result"]["serverInfo"] == {"name": "omics-ai-mcp", "version": "1.0.0"}
    assert "tools" in reply["result"]["capabilities"]


def test_negotiate_unknown_version_answers_latest() -> None:
    assert negotiate_protocol_version("1999-01-01") == SUPPORTED_PROTOCOL_VERSIONS[0]
    assert negotiate_protocol_version(None) == SUPPORTED_PROTOCOL_VERSIONS[0]


def test_notifications_get_no_reply() -> None:
    replies = _serve(
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 1, "method": "ping"},
    )
    assert replies == [{"jsonrpc": "2.0", "id": 1, "result": {}}]


def test_tools_list() -> None:
    [reply] = _serve({"jsonrpc": "2.0", "id": "a", "method": "tools/list"})
    names = {t["name"] for t in reply["result"]["tools"]}
    assert names == {"list_collections", "list_tables", "get_schema_fields", "query_table", "count_rows", "sql_search"}


def test_tools_call_wraps_text_content() -> None:
    calls = []

    def execute(name, arguments):
        calls.append((name, arguments))
        return "Count result: 42 rows in 'samples'"

    [reply] = _serve(
        {
            "jsonrpc": "2.0",
            "id": 7,
            "method": "tools/call",
            "params": {"name": "count_rows", "arguments": {"network": "viral"}},
        },
        execute=execute,
    )
    assert calls == [("count_rows", {"network": "viral"})]
    assert reply == {
        "jsonrpc": "2.0",
        "id": 7,
        "result": {"content": [{"type": "text", "text": "Count result: 42 rows in 'samples'"}]},
    }


def test_unknown_tool_is_successful_reply_with_error_text() -> None:
    [reply] = _serve(
        {"jsonrpc": "2.0", "id": 3, "method": "tools/call", "params": {"name": "nope", "arguments": {}}}
    )
    assert "error" not in reply
    assert reply["result"]["content"][0]["text"] == "Error: Unknown tool: nope"


def test_tools_call_without_name_is_invalid_params() -> None:
    [reply] = _serve({"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {}})
    assert reply["error"]["code"] == INVALID_PARAMS


def test_unknown_method() -> None:
    [reply] = _serve({"jsonrpc": "2.0", "id": 5, "method": "resources/list"})
    assert reply["error"]["code"] == METHOD_NOT_FOUND


def test_garbage_line_gets_parse_error_and_loop_continues() -> None:
    replies = _serve(b"this is not json\n", b"\n", {"jsonrpc": "2.0", "id": 9, "method": "ping"})
    assert replies[0]["error"]["code"] == PARSE_ERROR
    assert replies[0]["id"] is None
    assert replies[1]["id"] == 9


def test_dispatch_crash_becomes_internal_error() -> None:
    with patch.object(McpServer, "handle_initialize", side_effect=RuntimeError("boom")):
        [reply] = _serve({"jsonrpc": "2.0", "id": 11, "method": "initialize", "params": {}})
    assert reply["error"]["code"] == -32603


@pytest.mark.parametrize("message", [{"jsonrpc": "2.0", "id": 1, "result": {}}, {"jsonrpc": "2.0"}])
def test_client_responses_are_ignored(message) -> None:
    assert _serve(message) == []
