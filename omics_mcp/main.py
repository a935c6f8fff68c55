# Run from project root: uvicorn omics_mcp.main:app --port 8080

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from omics_mcp.api.handlers import handle_bridge_error
from omics_mcp.api.routes import router
from omics_mcp.core.config import (
    LOG_LEVEL,
    MAX_SESSIONS,
    SERVICE_NAME,
    SERVICE_VERSION,
    SESSION_MESSAGE_TIMEOUT,
    SESSION_TERMINATE_GRACE,
    WORKER_COMMAND,
)
from omics_mcp.core.errors import OmicsMcpError
from omics_mcp.core.session_store import SessionRegistry

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.registry = SessionRegistry(
        command=WORKER_COMMAND,
        message_timeout=SESSION_MESSAGE_TIMEOUT,
        terminate_grace=SESSION_TERMINATE_GRACE,
        max_sessions=MAX_SESSIONS,
    )
    logger.info("Omics AI MCP HTTP wrapper starting (worker: %s)", " ".join(WORKER_COMMAND))
    try:
        yield
    finally:
        logger.info("Shutting down HTTP wrapper...")
        await app.state.registry.shutdown_all()


app = FastAPI(title="Omics AI MCP HTTP Bridge", version=SERVICE_VERSION, lifespan=lifespan)
app.add_exception_handler(OmicsMcpError, handle_bridge_error)
app.include_router(router)


if __name__ == "__main__":
    print(f"{SERVICE_NAME} HTTP bridge: run with uvicorn omics_mcp.main:app")
