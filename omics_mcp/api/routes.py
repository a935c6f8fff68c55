"""
API route aggregator: register endpoints; no logic beyond request checks and
delegation to the session registry.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from omics_mcp.api.handlers import CORS_HEADERS, get_registry
from omics_mcp.core.config import (
    MESSAGES_ENDPOINT,
    SERVICE_NAME,
    SERVICE_VERSION,
    SSE_KEEPALIVE_INTERVAL,
)
from omics_mcp.core.errors import InvalidMessageError, SessionNotFoundError
from omics_mcp.core.session_store import SessionRegistry
from omics_mcp.schemas.session import (
    ErrorResponse,
    HealthResponse,
    SendMessageRequest,
    SessionClosedResponse,
    SessionCreatedResponse,
    SessionEntry,
    SessionListResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


# --- System ---

@router.get("/", tags=["system"], response_model=HealthResponse)
def root(registry: SessionRegistry = Depends(get_registry)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        activeSessions=len(registry),
    )


# --- Sessions ---

async def _read_send_request(request: Request) -> SendMessageRequest:
    """Parse the message envelope by hand so a bad body maps to 400 {"error"}, not 422."""
    raw = await request.body()
    if not raw.strip():
        raise InvalidMessageError("Message is required")
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidMessageError("Request body must be valid JSON") from e
    if not isinstance(payload, dict):
        raise InvalidMessageError("Message is required")
    return SendMessageRequest.model_validate(payload)


@router.post(
    "/session",
    response_model=SessionCreatedResponse,
    tags=["session"],
    summary="Open a session",
    description="Spawn a dedicated MCP worker process and return its session id. 500 if the worker cannot start.",
    responses=_ERRORS,
)
async def create_session(registry: SessionRegistry = Depends(get_registry)) -> SessionCreatedResponse:
    session_id = await registry.open()
    return SessionCreatedResponse(sessionId=session_id)


@router.post(
    "/session/{session_id}/message",
    tags=["session"],
    summary="Send a JSON-RPC message to a session",
    description="Write the message to the session's worker and return the first message it sends back. 404 unknown session, 400 missing message, 504 no reply within the timeout.",
    responses=_ERRORS,
    openapi_extra={
        "requestBody": {"content": {"application/json": {"schema": SendMessageRequest.model_json_schema()}}}
    },
)
async def post_session_message(
    session_id: str,
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
) -> JSONResponse:
    # Unknown session wins over a bad body.
    if session_id not in registry:
        raise SessionNotFoundError(session_id)
    body = await _read_send_request(request)
    if body.message is None:
        raise InvalidMessageError("Message is required")
    logger.info("[api:post_session_message] IN  session_id=%s", session_id)
    reply = await registry.send(session_id, body.message)
    return JSONResponse(content=reply)


@router.delete(
    "/session/{session_id}",
    response_model=SessionClosedResponse,
    tags=["session"],
    summary="Close a session",
    responses=_ERRORS,
)
async def delete_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionClosedResponse:
    await registry.close(session_id)
    return SessionClosedResponse()


@router.get("/sessions", response_model=SessionListResponse, tags=["session"], summary="List live sessions")
def get_sessions(registry: SessionRegistry = Depends(get_registry)) -> SessionListResponse:
    return SessionListResponse(
        sessions=[SessionEntry(id=info.id, active=info.active) for info in registry.list()]
    )


# --- SSE / streamable HTTP compatibility ---

async def _sse_generator(session_id: str, keepalive_interval: float) -> AsyncIterator[str]:
    """Announce the message endpoint for this connection, then keep the stream open."""
    yield f"event: endpoint\ndata: {MESSAGES_ENDPOINT}?sessionId={session_id}\n\n"
    try:
        while True:
            await asyncio.sleep(keepalive_interval)
            yield ": keepalive\n\n"
    finally:
        logger.info("SSE endpoint connection closed [%s]", session_id)


@router.get(
    "/sse",
    tags=["mcp"],
    summary="SSE endpoint announcement",
    description="Server-Sent Events stream: one `endpoint` event naming the message URL, then keep-alive comments.",
)
def get_sse() -> StreamingResponse:
    session_id = str(uuid.uuid4())
    logger.info("[api:get_sse] session_id=%s", session_id)
    return StreamingResponse(
        _sse_generator(session_id, SSE_KEEPALIVE_INTERVAL),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Access-Control-Allow-Origin": "*",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post(
    MESSAGES_ENDPOINT,
    tags=["mcp"],
    summary="Send a JSON-RPC message (session created on first use)",
    responses=_ERRORS,
)
async def post_messages(
    request: Request,
    sessionId: str | None = Query(None),
    registry: SessionRegistry = Depends(get_registry),
) -> JSONResponse:
    if not sessionId:
        raise InvalidMessageError("sessionId query parameter is required")
    raw = await request.body()
    try:
        message: Any = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidMessageError("Request body must be a JSON-RPC message") from e

    if sessionId not in registry:
        logger.info("[api:post_messages] creating session %s", sessionId)
        await registry.open(sessionId)
    reply = await registry.send(sessionId, message)
    return JSONResponse(content=reply, headers=CORS_HEADERS)


@router.options(MESSAGES_ENDPOINT, tags=["mcp"], include_in_schema=False)
def options_messages() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)
