"""Schemas for the session bridge endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /."""

    status: str = Field("ok", description="Always 'ok' when the server is up.")
    service: str = Field(..., description="Service name.")
    version: str = Field(..., description="Service version.")
    activeSessions: int = Field(..., description="Number of live worker sessions.")


class SessionCreatedResponse(BaseModel):
    """Response for POST /session."""

    sessionId: str = Field(..., description="Opaque id to use in /session/{id}/message.")

    model_config = {
        "json_schema_extra": {"examples": [{"sessionId": "3f1c2b8e-9d4a-4e57-8f0e-2a6b1c9d7e10"}]}
    }


class SendMessageRequest(BaseModel):
    """Request body for POST /session/{id}/message. `message` is a JSON-RPC message for the worker."""

    message: Any = Field(None, description="JSON-RPC message, e.g. a tools/call request.")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "message": {
                        "jsonrpc": "2.0",
                        "id": 1,
                        "method": "tools/call",
                        "params": {
                            "name": "count_rows",
                            "arguments": {
                                "network": "viral",
                                "collection_slug": "virusseq",
                                "table_name": "collections.virusseq.samples",
                            },
                        },
                    }
                }
            ]
        }
    }


class SessionClosedResponse(BaseModel):
    """Response for DELETE /session/{id}."""

    message: str = "Session closed"


class SessionEntry(BaseModel):
    id: str
    active: bool = True


class SessionListResponse(BaseModel):
    """Response for GET /sessions."""

    sessions: list[SessionEntry] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error body returned by bridge endpoints."""

    error: str
