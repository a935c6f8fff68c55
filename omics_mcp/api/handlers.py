"""
API handlers: map bridge errors to HTTP, resolve the session registry.

Responsibility: Bridge HTTP types and services. Exception-to-HTTP mapping lives
here so the session registry stays free of FastAPI/HTTP types.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from omics_mcp.core.config import MESSAGES_ENDPOINT
from omics_mcp.core.errors import OmicsMcpError
from omics_mcp.core.session_store import SessionRegistry

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def get_registry(request: Request) -> SessionRegistry:
    """FastAPI dependency: the registry created in the app lifespan."""
    return request.app.state.registry


async def handle_bridge_error(request: Request, exc: OmicsMcpError) -> JSONResponse:
    """Render any application error as {"error": message} with its status code."""
    status_code = exc.status_code
    if status_code >= 500:
        logger.error("[api] %s %s -> %d %s", request.method, request.url.path, status_code, exc.message)
    else:
        logger.info("[api] %s %s -> %d %s", request.method, request.url.path, status_code, exc.message)
    headers = CORS_HEADERS if request.url.path == MESSAGES_ENDPOINT else None
    return JSONResponse(status_code=status_code, content={"error": exc.message}, headers=headers)
