"""
In-memory session registry. Keyed by session_id; each session owns one worker
process speaking newline-delimited JSON-RPC on stdin/stdout.

The registry lives on the application's event loop and is only touched from
it, so the table itself needs no lock. Calls within one session are
serialized: a reply is the first message that arrives after a request is
written, which is only sound with one call in flight per session.
"""

import asyncio
import codecs
import json
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Sequence

from omics_mcp.core.errors import (
    SessionLimitError,
    SessionNotFoundError,
    SessionTimeoutError,
    SpawnError,
    WorkerIOError,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class SessionInfo:
    id: str
    active: bool = True


class Session:
    """One worker process plus the framing state for its stdout."""

    def __init__(self, session_id: str, process: asyncio.subprocess.Process) -> None:
        self.id = session_id
        self.process = process
        # Unterminated tail of the stdout stream; never contains a newline
        self.buffer = ""
        self.inbox: deque[Any] = deque()
        self.arrived = asyncio.Event()
        self.lock = asyncio.Lock()
        self.tasks: list[asyncio.Task] = []
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def alive(self) -> bool:
        return self.process.returncode is None

    def feed(self, chunk: bytes) -> int:
        """Append raw stdout bytes; queue every complete JSON line. Returns messages queued."""
        self.buffer += self._decoder.decode(chunk)
        *lines, self.buffer = self.buffer.split("\n")
        queued = 0
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError as e:
                logger.error("[session:%s] failed to parse MCP response: %s", self.id[:8], e)
                continue
            self.inbox.append(message)
            queued += 1
        if queued:
            self.arrived.set()
        return queued

    def reset_inbox(self) -> None:
        self.inbox.clear()
        self.arrived.clear()

    async def terminate(self, grace: float) -> None:
        """Stop the process (SIGTERM, then SIGKILL after `grace` seconds) and cancel its I/O tasks."""
        if self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self.process.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("[session:%s] did not exit after %.1fs, killing", self.id[:8], grace)
                try:
                    self.process.kill()
                except ProcessLookupError:
                    pass
                await self.process.wait()
        current = asyncio.current_task()
        for task in self.tasks:
            if task is not current and not task.done():
                task.cancel()


class SessionRegistry:
    """Owns every live session: spawn, message exchange, teardown."""

    def __init__(
        self,
        command: Sequence[str],
        message_timeout: float = 30.0,
        terminate_grace: float = 5.0,
        max_sessions: int = 0,
    ) -> None:
        self.command = list(command)
        self.message_timeout = message_timeout
        self.terminate_grace = terminate_grace
        self.max_sessions = max_sessions
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _discard(self, session: Session) -> bool:
        """Remove the entry if it still belongs to this session. True only for the caller that removed it."""
        if self._sessions.get(session.id) is session:
            del self._sessions[session.id]
            return True
        return False

    async def open(self, session_id: str | None = None) -> str:
        """Spawn a worker for a new session (or for the given id) and return the id."""
        if session_id is not None and session_id in self._sessions:
            return session_id
        if self.max_sessions and len(self._sessions) >= self.max_sessions:
            raise SessionLimitError(f"Session limit reached ({self.max_sessions})")

        session_id = session_id or str(uuid.uuid4())
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("[session_store:open] failed to spawn %s: %s", self.command, e)
            raise SpawnError(f"Failed to start MCP server process: {e}") from e

        session = Session(session_id, process)
        if session_id in self._sessions:
            # Another request created this id while we were spawning
            await session.terminate(self.terminate_grace)
            return session_id

        self._sessions[session_id] = session
        session.tasks = [
            asyncio.create_task(self._read_stdout(session)),
            asyncio.create_task(self._read_stderr(session)),
            asyncio.create_task(self._watch_exit(session)),
        ]
        logger.info("[session_store:open] session=%s pid=%s sessions=%d", session_id, process.pid, len(self))
        return session_id

    async def send(self, session_id: str, message: Any) -> Any:
        """Write one message and return the first message the worker sends back."""
        session = self._get(session_id)
        async with session.lock:
            session.reset_inbox()
            data = (json.dumps(message) + "\n").encode("utf-8")
            stdin = session.process.stdin
            try:
                stdin.write(data)
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.error("[session_store:send] session=%s write failed: %s", session_id, e)
                raise WorkerIOError("Failed to send message to MCP server") from e

            try:
                await asyncio.wait_for(session.arrived.wait(), timeout=self.message_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "[session_store:send] session=%s no reply within %.1fs", session_id, self.message_timeout
                )
                raise SessionTimeoutError() from None
            return session.inbox[0]

    async def close(self, session_id: str) -> None:
        session = self._get(session_id)
        self._discard(session)
        await session.terminate(self.terminate_grace)
        logger.info("[session_store:close] session=%s closed sessions=%d", session_id, len(self))

    def list(self) -> list[SessionInfo]:
        return [SessionInfo(id=sid, active=True) for sid in self._sessions]

    async def shutdown_all(self) -> None:
        """Terminate every live worker. Called once when the server shuts down."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            logger.info("[session_store:shutdown_all] killing session %s", session.id)
        results = await asyncio.gather(
            *(s.terminate(self.terminate_grace) for s in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error("[session_store:shutdown_all] session=%s terminate failed: %s", session.id, result)

    async def _read_stdout(self, session: Session) -> None:
        stream = session.process.stdout
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                return
            session.feed(chunk)

    async def _read_stderr(self, session: Session) -> None:
        stream = session.process.stderr
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                return
            text = chunk.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.info("MCP stderr [%s]: %s", session.id, text)

    async def _watch_exit(self, session: Session) -> None:
        code = await session.process.wait()
        logger.info("MCP process [%s] exited with code %s", session.id, code)
        self._discard(session)
