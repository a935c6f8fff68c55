"""
Response classification for the Explorer API.

Responsibility: Map raw, loosely-shaped response bodies into one of four tagged
variants (DataRows, Continuation, Empty, ParseFailure). Nothing outside this
module looks at the untyped objects to decide what happened.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

import httpx

from omics_mcp.core.errors import RemoteError, ResponseParseError

logger = logging.getLogger(__name__)

DATA_FIELD = "data"
TOKEN_FIELD = "next_page_token"


@dataclass(frozen=True)
class DataRows:
    """Response carries a data-bearing object."""

    payload: dict[str, Any]

    @property
    def rows(self) -> list[Any]:
        data = self.payload.get(DATA_FIELD)
        return data if isinstance(data, list) else []


@dataclass(frozen=True)
class Continuation:
    """More asynchronous work remains; `token` is a page token or a next-page URL."""

    token: Any
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Empty:
    """Neither data nor continuation; `payload` is the last non-empty object (or {})."""

    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParseFailure:
    """Body could not be classified."""

    reason: str

    def raise_error(self) -> None:
        raise ResponseParseError(self.reason)


ClassifiedResponse = Union[DataRows, Continuation, Empty, ParseFailure]


def parse_lines(raw_text: str) -> list[dict[str, Any]]:
    """Parse every non-blank line as a JSON object. Lines that fail to parse are dropped."""
    objects: list[dict[str, Any]] = []
    for line in (raw_text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            objects.append(obj)
    return objects


def classify_lines(raw_text: str) -> ClassifiedResponse:
    """
    Classify a line-delimited JSON body.

    The service may emit diagnostic or partial-progress lines before the
    authoritative one, so later lines win: scanning from the end, the first
    object with data is returned, then the first with a continuation token,
    then the last object that has any field at all.
    """
    if not raw_text or not raw_text.strip():
        return ParseFailure("Empty response received")

    objects = parse_lines(raw_text)
    if not objects:
        return ParseFailure("No valid JSON objects found in response")

    for obj in reversed(objects):
        if DATA_FIELD in obj:
            return DataRows(obj)

    for obj in reversed(objects):
        if TOKEN_FIELD in obj:
            return Continuation(obj[TOKEN_FIELD], obj)

    for obj in reversed(objects):
        if obj:
            return Empty(obj)

    return ParseFailure("No data or next_page_token found in response")


def parse_json_document(response: httpx.Response) -> dict[str, Any]:
    """Decode a whole response body as one JSON object."""
    content_type = response.headers.get("content-type", "")
    text = response.text
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        if content_type.startswith("application/json"):
            logger.warning("[jsonlines:parse_json_document] body is not JSON despite content-type=%s", content_type)
        raise ResponseParseError(f"Invalid JSON response: {text[:200]}...") from e
    if not isinstance(document, dict):
        raise ResponseParseError(f"Invalid JSON response: {text[:200]}...")
    return document


def classify_search_page(document: dict[str, Any]) -> ClassifiedResponse:
    """
    Classify one page of a SQL search job.

    Raises RemoteError when the service reports query errors. Empty `data`
    with a `pagination.next_page_url` means the job is still running.
    """
    errors = document.get("errors") or []
    if errors:
        first = errors[0] if isinstance(errors[0], dict) else {}
        details = first.get("details") or "Unknown error"
        raise RemoteError(f"SQL query error: {details}")

    data = document.get(DATA_FIELD)
    if isinstance(data, list) and data:
        return DataRows(document)

    pagination = document.get("pagination") or {}
    next_page_url = pagination.get("next_page_url") if isinstance(pagination, dict) else None
    if next_page_url:
        return Continuation(next_page_url, document)

    return Empty(document)
