"""
Application errors for clean API and tool error handling.

Bridge errors (session lifecycle) carry an HTTP status so the API layer can
return a JSON error body. Tool errors never reach HTTP; the tool layer turns
them into error text inside a successful protocol reply.
"""


class OmicsMcpError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# --- Session bridge ---

class SessionNotFoundError(OmicsMcpError):
    """Raised when a session id is not in the registry."""

    status_code = 404

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__("Session not found")


class SessionTimeoutError(OmicsMcpError):
    """Raised when the worker does not reply before the deadline."""

    status_code = 504

    def __init__(self, message: str = "Request timeout") -> None:
        super().__init__(message)


class SpawnError(OmicsMcpError):
    """Raised when the worker process cannot be started."""

    status_code = 500


class WorkerIOError(OmicsMcpError):
    """Raised when a message cannot be written to the worker process."""

    status_code = 500


class SessionLimitError(OmicsMcpError):
    """Raised when MAX_SESSIONS workers are already running."""

    status_code = 503


class InvalidMessageError(OmicsMcpError):
    """Raised when a bridge request carries no usable protocol message."""

    status_code = 400


# --- Tools / remote service ---

class ResponseParseError(OmicsMcpError):
    """Raised when a response body cannot be classified."""


class RemoteError(OmicsMcpError):
    """Raised when the remote service reports a structured error."""


class PollTimeoutError(OmicsMcpError):
    """Raised when a poll cycle exhausts its attempts."""


class UnknownToolError(OmicsMcpError):
    """Raised when a tool name is not in the catalogue."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolExecutionError(OmicsMcpError):
    """Raised by a tool operation; message names the failed action and the cause."""
