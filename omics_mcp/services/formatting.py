"""
Human-readable text for tool results. String templating, plus a shape check on row payloads.
"""

import json
from typing import Any

from omics_mcp.core.config import PREVIEW_ROWS
from omics_mcp.core.errors import RemoteError

MAX_TABLE_COLUMNS = 8


def _rows(result: dict[str, Any]) -> list[Any]:
    rows = result.get("data") or []
    if not isinstance(rows, list):
        raise RemoteError(f"Unexpected response format: data is {type(rows).__name__}, expected a list")
    return rows


def _number(value: Any) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float) and value.is_integer():
        return f"{int(value):,}"
    return str(value)


def format_collections(network: str, collections: list[dict[str, Any]]) -> str:
    entries = [
        f"• **{c.get('name')}** ({c.get('slugName')})\n  {c.get('description') or 'No description'}"
        for c in collections
    ]
    return f"Found {len(collections)} collections in {network}:\n\n" + "\n\n".join(entries)


def format_tables(collection_slug: str, tables: list[dict[str, Any]]) -> str:
    entries = []
    for t in tables:
        name = t.get("qualified_table_name") or t.get("name")
        size = t.get("size")
        size_text = f"{_number(size)} rows" if size else "Size unknown"
        entries.append(f"• **{t.get('display_name')}** ({name})\n  {size_text}")
    return f"Found {len(tables)} tables in collection '{collection_slug}':\n\n" + "\n\n".join(entries)


def _type_name(prop: dict[str, Any]) -> str:
    type_ = prop.get("type") or ""
    if isinstance(type_, list):
        type_ = ", ".join(str(t) for t in type_)
    return str(type_)


def schema_fields(properties: dict[str, Any]) -> list[dict[str, str]]:
    """Flatten data_model.properties into field/type/sql_type entries."""
    fields = []
    for field_name, prop in properties.items():
        prop = prop if isinstance(prop, dict) else {}
        field_type = _type_name(prop)
        items = prop.get("items")
        if field_type == "array" and isinstance(items, dict):
            field_type = f"array<{_type_name(items)}>"
        fields.append({"field": field_name, "type": field_type, "sql_type": prop.get("sqlType") or ""})
    return fields


def format_schema(table_name: str, fields: list[dict[str, str]]) -> str:
    lines = [
        f"• **{f['field']}**: {f['type']}" + (f" (SQL: {f['sql_type']})" if f["sql_type"] else "")
        for f in fields
    ]
    return f"Schema for table '{table_name}' ({len(fields)} fields):\n\n" + "\n".join(lines)


def format_query_rows(table_name: str, result: dict[str, Any]) -> str:
    rows = _rows(result)
    summary = f"Query returned {len(rows)} rows from '{table_name}'"
    pagination = result.get("pagination")
    if isinstance(pagination, dict) and pagination:
        offset = pagination.get("offset") or 0
        if not isinstance(offset, int) or isinstance(offset, bool):
            raise RemoteError(f"Unexpected response format: pagination.offset is {offset!r}")
        total = pagination.get("total") or "unknown"
        summary += f"\nPagination: showing {offset} to {offset + len(rows)} of {total} total rows"
    return f"{summary}\n\nFirst few rows:\n" + json.dumps(rows[:PREVIEW_ROWS], indent=2)


def format_query_empty(table_name: str) -> str:
    return f"Query returned no results from '{table_name}'"


def format_count(table_name: str, count: Any, filtered: bool) -> str:
    suffix = " matching the specified filters" if filtered else ""
    return f"Count result: {_number(count)} rows in '{table_name}'{suffix}"


def format_sql_empty(sql: str) -> str:
    return f"SQL query completed with no results\n\nQuery: {sql}"


def _is_scalar(value: Any) -> bool:
    return value is not None and not isinstance(value, (dict, list))


def format_sql_results(result: dict[str, Any], sql: str) -> str:
    rows = _rows(result)
    pagination: dict | None = result.get("pagination") if isinstance(result.get("pagination"), dict) else None
    summary = f"SQL query returned {len(rows):,} rows"
    if pagination and pagination.get("next_page_url"):
        summary += f" (showing first {len(rows)}, total: {pagination.get('total') or 'unknown'})"

    preview = rows[:PREVIEW_ROWS]
    body = ""
    if preview:
        first = preview[0] if isinstance(preview[0], dict) else {}
        keys = list(first.keys())
        if keys and len(keys) <= MAX_TABLE_COLUMNS and all(_is_scalar(first[k]) for k in keys):
            lines = [" | ".join(keys), " | ".join("---" for _ in keys)]
            for row in preview:
                lines.append(" | ".join("" if row.get(k) is None else str(row.get(k)) for k in keys))
            body = "\n**Sample Results:**\n" + "\n".join(lines) + "\n"
        else:
            body = "\n**Sample Results (JSON):**\n```json\n" + json.dumps(preview, indent=2) + "\n```"

    return f"{summary}\n\n**Query:** `{sql}`{body}"
