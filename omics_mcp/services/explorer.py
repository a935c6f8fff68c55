"""
Explorer tool operations.

Responsibility: One function per tool. Each takes a client already scoped to
a network, talks to the Explorer API, and returns result text. Failures are
raised as ToolExecutionError naming the action; the tool layer turns them into
error text for the agent.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator

import httpx

from omics_mcp.core.config import (
    QUERY_MAX_POLLS,
    QUERY_POLL_INTERVAL,
    SQL_MAX_POLLS,
    SQL_POLL_INTERVAL,
)
from omics_mcp.core.errors import OmicsMcpError, RemoteError, ToolExecutionError
from omics_mcp.services import formatting
from omics_mcp.services.explorer_client import segment
from omics_mcp.services.jsonlines import (
    Continuation,
    DataRows,
    ParseFailure,
    classify_lines,
    classify_search_page,
    parse_json_document,
)
from omics_mcp.services.polling import PollCycle, is_http_failure

logger = logging.getLogger(__name__)


def _reason(error: Exception) -> str:
    if isinstance(error, OmicsMcpError):
        return error.message
    if isinstance(error, httpx.HTTPStatusError):
        return f"Request failed with status code {error.response.status_code}"
    return str(error) or type(error).__name__


@contextmanager
def _failure(action: str) -> Iterator[None]:
    try:
        yield
    except Exception as e:
        logger.warning("[explorer] %s failed: %s", action, e)
        raise ToolExecutionError(f"Failed to {action}: {_reason(e)}") from e


def _get_json(client: httpx.Client, path: str) -> Any:
    response = client.get(path)
    response.raise_for_status()
    return response.json()


def list_collections(client: httpx.Client, network: str) -> str:
    with _failure("list collections"):
        collections = _get_json(client, "/api/collections")
        if not isinstance(collections, list):
            raise RemoteError("Expected list of collections but got something else")
        return formatting.format_collections(network, collections)


def list_tables(client: httpx.Client, collection_slug: str) -> str:
    with _failure("list tables"):
        tables = _get_json(client, f"/api/collections/{segment(collection_slug)}/tables")
        if not isinstance(tables, list):
            raise RemoteError("Expected list of tables but got something else")
        return formatting.format_tables(collection_slug, tables)


def get_schema_fields(client: httpx.Client, collection_slug: str, table_name: str) -> str:
    with _failure("get schema"):
        schema = _get_json(
            client,
            f"/api/collection/{segment(collection_slug)}/data-connect/table/{segment(table_name)}/info",
        )
        data_model = (schema or {}).get("data_model") if isinstance(schema, dict) else None
        properties = (data_model or {}).get("properties") if isinstance(data_model, dict) else None
        if not properties or not isinstance(properties, dict):
            raise RemoteError("No schema (data_model.properties) found in response")
        return formatting.format_schema(table_name, formatting.schema_fields(properties))


def query_table(
    client: httpx.Client,
    collection_slug: str,
    table_name: str,
    filters: dict[str, Any] | None = None,
    limit: int = 100,
    offset: int = 0,
    order_by: dict[str, Any] | None = None,
    max_polls: int = QUERY_MAX_POLLS,
    poll_interval: float = QUERY_POLL_INTERVAL,
) -> str:
    """Filter rows of a table. The same endpoint is re-posted with the latest page token until rows arrive."""
    path = f"/api/collections/{segment(collection_slug)}/tables/{segment(table_name)}/filter"
    payload: dict[str, Any] = {
        "tableName": table_name,
        "filters": filters or {},
        "pagination": {"limit": limit, "offset": offset},
    }
    if order_by:
        payload["order"] = order_by

    def step():
        response = client.post(path, json=payload)
        response.raise_for_status()
        return classify_lines(response.text)

    def advance(token: Any) -> None:
        payload["next_page_token"] = token

    with _failure("query table"):
        outcome = PollCycle(max_polls, poll_interval, label="Query").run(step, advance)
        if isinstance(outcome.result, DataRows):
            return formatting.format_query_rows(table_name, outcome.result.payload)
        return formatting.format_query_empty(table_name)


def count_rows(
    client: httpx.Client,
    collection_slug: str,
    table_name: str,
    filters: dict[str, Any] | None = None,
) -> str:
    filters = filters or {}
    with _failure("count rows"):
        response = client.post(
            f"/api/collections/{segment(collection_slug)}/tables/{segment(table_name)}/filter/count",
            json={"filters": filters},
        )
        response.raise_for_status()
        result = classify_lines(response.text)
        if isinstance(result, ParseFailure):
            result.raise_error()
        count = result.payload.get("count") or 0
        return formatting.format_count(table_name, count, bool(filters))


def sql_search(
    client: httpx.Client,
    collection_slug: str,
    sql: str,
    max_polls: int = SQL_MAX_POLLS,
    poll_interval: float = SQL_POLL_INTERVAL,
) -> str:
    """Submit a Trino SQL query, then follow the server's next_page_url until results arrive."""
    with _failure("execute SQL query"):
        response = client.post(
            f"/api/collection/{segment(collection_slug)}/data-connect/search",
            json={"query": sql},
        )
        response.raise_for_status()
        first = classify_search_page(parse_json_document(response))
        if isinstance(first, DataRows):
            return formatting.format_sql_results(first.payload, sql)
        if not isinstance(first, Continuation):
            return formatting.format_sql_empty(sql)

        state = {"url": first.token}

        def step():
            page = client.get(state["url"])
            page.raise_for_status()
            return classify_search_page(parse_json_document(page))

        def advance(token: Any) -> None:
            state["url"] = token

        # Any HTTP failure on a non-final job page poll is retried, 4xx included.
        outcome = PollCycle(
            max_polls, poll_interval, initial_delay=True, label="SQL query", retry_on=is_http_failure
        ).run(step, advance)
        if isinstance(outcome.result, DataRows):
            return formatting.format_sql_results(outcome.result.payload, sql)
        return formatting.format_sql_empty(sql)
