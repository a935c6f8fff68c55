"""
MCP tools: definitions and execution for the Explorer tool server.

Tools: list_collections, list_tables, get_schema_fields, query_table, count_rows,
sql_search. Every call answers with text; failures become "Error: ..." text
rather than protocol errors, so the calling agent always gets a reply.
"""

import logging
from typing import Any, Callable

import httpx

from omics_mcp.core.config import SQL_MAX_POLLS, SQL_POLL_INTERVAL
from omics_mcp.core.errors import OmicsMcpError, UnknownToolError
from omics_mcp.services import explorer
from omics_mcp.services.explorer_client import build_client

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str | None], httpx.Client]

_NETWORK = {
    "type": "string",
    "description": "Network name (hifisolves, neuroscience, asap, viral, targetals) or full URL",
    "examples": ["hifisolves", "viral", "neuroscience.ai"],
}
_ACCESS_TOKEN = {
    "type": "string",
    "description": "Optional access token for authentication",
}
_COLLECTION_SLUG = {
    "type": "string",
    "description": "Collection slug name (e.g., 'gnomad', 'virusseq')",
}
_TABLE_NAME = {
    "type": "string",
    "description": "Qualified table name (e.g., 'collections.gnomad.variants')",
}
_FILTERS = {
    "type": "object",
    "description": "Dictionary of filters to apply",
    "additionalProperties": True,
}

# MCP tools/list format: name, description, inputSchema
TOOLS: list[dict[str, Any]] = [
    {
        "name": "list_collections",
        "description": "List all collections available in an Omics AI Explorer network",
        "inputSchema": {
            "type": "object",
            "properties": {"network": _NETWORK, "access_token": _ACCESS_TOKEN},
            "required": ["network"],
        },
    },
    {
        "name": "list_tables",
        "description": "List all tables in a specific collection",
        "inputSchema": {
            "type": "object",
            "properties": {
                "network": _NETWORK,
                "collection_slug": _COLLECTION_SLUG,
                "access_token": _ACCESS_TOKEN,
            },
            "required": ["network", "collection_slug"],
        },
    },
    {
        "name": "get_schema_fields",
        "description": "Get the schema fields for a specific table",
        "inputSchema": {
            "type": "object",
            "properties": {
                "network": _NETWORK,
                "collection_slug": _COLLECTION_SLUG,
                "table_name": _TABLE_NAME,
                "access_token": _ACCESS_TOKEN,
            },
            "required": ["network", "collection_slug", "table_name"],
        },
    },
    {
        "name": "query_table",
        "description": "Query data from a table with optional filters and pagination",
        "inputSchema": {
            "type": "object",
            "properties": {
                "network": _NETWORK,
                "collection_slug": _COLLECTION_SLUG,
                "table_name": _TABLE_NAME,
                "filters": _FILTERS,
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of rows to return (default: 100)",
                    "default": 100,
                },
                "offset": {
                    "type": "integer",
                    "description": "Number of rows to skip (default: 0)",
                    "default": 0,
                },
                "order_by": {
                    "type": "object",
                    "description": "Ordering specification",
                    "properties": {
                        "field": {"type": "string"},
                        "direction": {"type": "string", "enum": ["ASC", "DESC"]},
                    },
                },
                "access_token": _ACCESS_TOKEN,
            },
            "required": ["network", "collection_slug", "table_name"],
        },
    },
    {
        "name": "count_rows",
        "description": "Count the number of rows matching given filters",
        "inputSchema": {
            "type": "object",
            "properties": {
                "network": _NETWORK,
                "collection_slug": _COLLECTION_SLUG,
                "table_name": _TABLE_NAME,
                "filters": _FILTERS,
                "access_token": _ACCESS_TOKEN,
            },
            "required": ["network", "collection_slug", "table_name"],
        },
    },
    {
        "name": "sql_search",
        "description": "Execute a SQL query against a collection using Trino syntax",
        "inputSchema": {
            "type": "object",
            "properties": {
                "network": _NETWORK,
                "collection_slug": _COLLECTION_SLUG,
                "sql": {
                    "type": "string",
                    "description": "SQL query string (use Trino syntax with double quotes for identifiers)",
                },
                "max_polls": {
                    "type": "integer",
                    "description": "Maximum number of polling attempts (default: 10)",
                    "default": SQL_MAX_POLLS,
                },
                "poll_interval": {
                    "type": "number",
                    "description": "Seconds to wait between polls (default: 2.0)",
                    "default": SQL_POLL_INTERVAL,
                },
                "access_token": _ACCESS_TOKEN,
            },
            "required": ["network", "collection_slug", "sql"],
        },
    },
]

TOOL_NAMES = frozenset(t["name"] for t in TOOLS)


def _required(args: dict[str, Any], *names: str) -> list[Any]:
    values = []
    for name in names:
        value = args.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError(f"Missing required argument: {name}")
        values.append(value)
    return values


def _run_tool(name: str, args: dict[str, Any], client_factory: ClientFactory) -> str:
    if name not in TOOL_NAMES:
        raise UnknownToolError(name)

    (network,) = _required(args, "network")
    with client_factory(network, args.get("access_token")) as client:
        if name == "list_collections":
            return explorer.list_collections(client, network)

        if name == "list_tables":
            (slug,) = _required(args, "collection_slug")
            return explorer.list_tables(client, slug)

        if name == "get_schema_fields":
            slug, table = _required(args, "collection_slug", "table_name")
            return explorer.get_schema_fields(client, slug, table)

        if name == "query_table":
            slug, table = _required(args, "collection_slug", "table_name")
            return explorer.query_table(
                client,
                slug,
                table,
                filters=args.get("filters") or {},
                limit=int(args.get("limit", 100)),
                offset=int(args.get("offset", 0)),
                order_by=args.get("order_by"),
            )

        if name == "count_rows":
            slug, table = _required(args, "collection_slug", "table_name")
            return explorer.count_rows(client, slug, table, filters=args.get("filters") or {})

        slug, sql = _required(args, "collection_slug", "sql")
        return explorer.sql_search(
            client,
            slug,
            sql,
            max_polls=int(args.get("max_polls", SQL_MAX_POLLS)),
            poll_interval=float(args.get("poll_interval", SQL_POLL_INTERVAL)),
        )


def execute_tool(
    name: str,
    arguments: dict[str, Any] | None,
    client_factory: ClientFactory = build_client,
) -> str:
    """
    Execute a tool by name with the given arguments. Returns result text, or
    "Error: <message>" when anything fails (including an unknown tool name).
    """
    args = arguments or {}
    safe_args = {k: v for k, v in args.items() if k != "access_token"}
    logger.info("[tools] execute_tool name=%r arguments=%r", name, safe_args)
    try:
        text = _run_tool(name, args, client_factory)
    except OmicsMcpError as e:
        return f"Error: {e.message}"
    except (TypeError, ValueError) as e:
        return f"Error: {e}"
    except Exception as e:
        logger.exception("[tools] execute_tool name=%r failed", name)
        return f"Error: {e}"
    logger.info("[tools] execute_tool name=%r OUT text_len=%d", name, len(text))
    return text
