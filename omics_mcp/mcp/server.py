"""
MCP tool server over stdio: the worker process behind one bridge session.

Reads newline-delimited JSON-RPC 2.0 messages from stdin and writes one JSON
line per response to stdout. stdout carries protocol messages only; all
logging goes to stderr.

Run: python -m omics_mcp.mcp.server
"""

import json
import logging
import sys
from typing import Any, BinaryIO, Callable, TextIO

from omics_mcp.core.config import LOG_LEVEL, SERVICE_NAME, SERVICE_VERSION
from omics_mcp.mcp.tools import TOOLS, execute_tool

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def negotiate_protocol_version(requested: str | None) -> str:
    """Echo a supported version, otherwise answer with the latest one we speak."""
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return SUPPORTED_PROTOCOL_VERSIONS[0]


class McpServer:
    """
    Handles JSON-RPC communication over stdio, one message at a time.

    The bridge treats the first line written after a request as its reply, so
    every request (a message with an id) gets exactly one response line and
    notifications get none.
    """

    def __init__(
        self,
        output: TextIO,
        execute: Callable[[str, dict[str, Any]], str] = execute_tool,
    ) -> None:
        self.output = output
        self.execute = execute
        self.initialized = False

    def send(self, message: dict[str, Any]) -> None:
        self.output.write(json.dumps(message) + "\n")
        self.output.flush()

    @staticmethod
    def result(msg_id: Any, result: dict[str, Any]) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": msg_id, "result": result}

    @staticmethod
    def error(msg_id: Any, code: int, message: str) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": message}}

    def handle_line(self, line: bytes) -> None:
        """Decode one framed line and send the reply, if any."""
        if not line.strip():
            return
        try:
            msg = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("[mcp:handle_line] unparseable message: %s", e)
            self.send(self.error(None, PARSE_ERROR, "Parse error"))
            return
        if not isinstance(msg, dict):
            self.send(self.error(None, INVALID_REQUEST, "Invalid Request"))
            return

        try:
            response = self.dispatch(msg)
        except Exception:
            logger.exception("[mcp:handle_line] unexpected error during dispatch")
            response = None
            if msg.get("id") is not None:
                response = self.error(msg.get("id"), INTERNAL_ERROR, "Internal error during request dispatch.")
        if response is not None:
            self.send(response)

    def dispatch(self, msg: dict[str, Any]) -> dict[str, Any] | None:
        """Route one message. Returns the response, or None for notifications."""
        method = msg.get("method")
        msg_id = msg.get("id")
        is_notification = "id" not in msg

        if not isinstance(method, str):
            if is_notification or "result" in msg or "error" in msg:
                # Client-side responses and malformed notifications need no reply
                return None
            return self.error(msg_id, INVALID_REQUEST, "Invalid Request")

        params = msg.get("params") or {}

        if is_notification:
            if method == "notifications/initialized":
                self.initialized = True
            logger.info("[mcp:dispatch] notification %s", method)
            return None

        logger.info("[mcp:dispatch] request id=%r method=%s", msg_id, method)

        if method == "initialize":
            return self.result(msg_id, self.handle_initialize(params))
        if method == "ping":
            return self.result(msg_id, {})
        if method == "tools/list":
            return self.result(msg_id, {"tools": TOOLS})
        if method == "tools/call":
            if not isinstance(params, dict) or not isinstance(params.get("name"), str):
                return self.error(msg_id, INVALID_PARAMS, "tools/call params must include a tool name")
            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                return self.error(msg_id, INVALID_PARAMS, "tools/call arguments must be an object")
            text = self.execute(params["name"], arguments)
            return self.result(msg_id, {"content": [{"type": "text", "text": text}]})

        return self.error(msg_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    def handle_initialize(self, params: Any) -> dict[str, Any]:
        requested = params.get("protocolVersion") if isinstance(params, dict) else None
        return {
            "protocolVersion": negotiate_protocol_version(requested),
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVICE_NAME, "version": SERVICE_VERSION},
        }

    def serve(self, stream: BinaryIO) -> None:
        """Process messages until EOF."""
        while True:
            line = stream.readline()
            if not line:
                logger.info("[mcp:serve] stdin closed, exiting")
                return
            try:
                self.handle_line(line)
            except BrokenPipeError:
                logger.warning("[mcp:serve] stdout closed while sending, exiting")
                return


def main() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )
    logger.info("Omics AI MCP server running on stdio")
    server = McpServer(sys.stdout)
    try:
        server.serve(sys.stdin.buffer)
    except KeyboardInterrupt:
        logger.info("[mcp:main] interrupted, exiting")


if __name__ == "__main__":
    main()
