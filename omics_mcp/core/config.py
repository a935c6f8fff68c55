"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os
import shlex
import sys

from dotenv import load_dotenv

load_dotenv()

# Service identity (health check, MCP serverInfo, outbound User-Agent)
SERVICE_NAME: str = "omics-ai-mcp"
SERVICE_VERSION: str = "1.0.0"
USER_AGENT: str = f"omics-ai-mcp-server/{SERVICE_VERSION}"

PORT: int = int(os.getenv("PORT", "8080"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Worker process spawned per session (stdio JSON-RPC tool server)
_DEFAULT_WORKER_COMMAND = [sys.executable, "-m", "omics_mcp.mcp.server"]
WORKER_COMMAND: list[str] = (
    shlex.split(os.getenv("WORKER_COMMAND", "")) or _DEFAULT_WORKER_COMMAND
)

# Session bridge (seconds)
SESSION_MESSAGE_TIMEOUT: float = float(os.getenv("SESSION_MESSAGE_TIMEOUT", "30"))
SESSION_TERMINATE_GRACE: float = float(os.getenv("SESSION_TERMINATE_GRACE", "5"))
# 0 means no limit on concurrently open sessions
MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "0"))

# SSE / streamable HTTP compatibility
SSE_KEEPALIVE_INTERVAL: float = float(os.getenv("SSE_KEEPALIVE_INTERVAL", "30"))
MESSAGES_ENDPOINT: str = "/v1/omics-ai-mcp/messages"

# Remote Explorer API
EXPLORER_HTTP_TIMEOUT: float = float(os.getenv("EXPLORER_HTTP_TIMEOUT", "30"))
KNOWN_NETWORKS: dict[str, str] = {
    "hifisolves": "hifisolves.org",
    "neuroscience": "neuroscience.ai",
    "asap": "cloud.parkinsonsroadmap.org",
    "parkinsons": "cloud.parkinsonsroadmap.org",
    "biomedical": "biomedical.ai",
    "viral": "viral.ai",
    "targetals": "dataportal.targetals.org",
}

# Polling (query_table uses fixed limits; sql_search takes them from arguments)
QUERY_MAX_POLLS: int = int(os.getenv("QUERY_MAX_POLLS", "10"))
QUERY_POLL_INTERVAL: float = float(os.getenv("QUERY_POLL_INTERVAL", "2.0"))
SQL_MAX_POLLS: int = 10
SQL_POLL_INTERVAL: float = 2.0
# Continuation token meaning "poll again without changing the request"
EMPTY_POLL_TOKEN: str = "empty_response_poll"

# Result formatting
PREVIEW_ROWS: int = 5
