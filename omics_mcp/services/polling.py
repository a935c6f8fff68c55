"""
Bounded polling for asynchronous Explorer queries.

Responsibility: Repeatedly issue one request, classify the reply and decide
whether to stop, keep polling or fail. How a request is built and how a
continuation is applied belong to the caller.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from omics_mcp.core.config import EMPTY_POLL_TOKEN
from omics_mcp.core.errors import PollTimeoutError
from omics_mcp.services.jsonlines import (
    ClassifiedResponse,
    Continuation,
    DataRows,
    Empty,
    ParseFailure,
)

logger = logging.getLogger(__name__)


@dataclass
class PollOutcome:
    """Terminal state of a poll cycle: rows found, or finished with no results."""

    result: ClassifiedResponse
    attempts: int

    @property
    def has_data(self) -> bool:
        return isinstance(self.result, DataRows)


def is_retryable(error: Exception) -> bool:
    """Transport failures and server-side (5xx) errors are retried on non-final attempts."""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return False


def is_http_failure(error: Exception) -> bool:
    """Any transport failure or HTTP error status, 4xx included."""
    return isinstance(error, (httpx.TransportError, httpx.HTTPStatusError))


class PollCycle:
    """
    One bounded poll cycle.

    `step()` performs a single request and returns a ClassifiedResponse.
    `advance(token)` applies a continuation before the next attempt; it is not
    called for the "poll again" sentinel token.
    """

    def __init__(
        self,
        max_polls: int,
        poll_interval: float,
        *,
        initial_delay: bool = False,
        label: str = "Query",
        sleep: Callable[[float], Any] | None = None,
        retry_on: Callable[[Exception], bool] = is_retryable,
    ) -> None:
        self.max_polls = max(1, int(max_polls))
        self.poll_interval = max(0.0, float(poll_interval))
        self.initial_delay = initial_delay
        self.label = label
        self.sleep = sleep or time.sleep
        self.retry_on = retry_on
        self.attempts = 0

    def _wait(self) -> None:
        if self.poll_interval > 0:
            self.sleep(self.poll_interval)

    def run(
        self,
        step: Callable[[], ClassifiedResponse],
        advance: Callable[[Any], None],
    ) -> PollOutcome:
        if self.initial_delay:
            self._wait()

        for attempt in range(self.max_polls):
            self.attempts = attempt + 1
            final = self.attempts == self.max_polls
            try:
                result = step()
            except Exception as e:
                if final or not self.retry_on(e):
                    raise
                logger.warning(
                    "[polling:run] %s attempt %d/%d failed, retrying: %s",
                    self.label, self.attempts, self.max_polls, e,
                )
                self._wait()
                continue

            if isinstance(result, ParseFailure):
                result.raise_error()

            if isinstance(result, (DataRows, Empty)):
                logger.info(
                    "[polling:run] %s done after %d attempt(s) outcome=%s",
                    self.label, self.attempts, type(result).__name__,
                )
                return PollOutcome(result=result, attempts=self.attempts)

            if isinstance(result, Continuation):
                if result.token != EMPTY_POLL_TOKEN:
                    advance(result.token)
                logger.info(
                    "[polling:run] %s attempt %d/%d pending, continuation=%r",
                    self.label, self.attempts, self.max_polls, result.token,
                )
                if not final:
                    self._wait()
                continue

            raise TypeError(f"Unexpected classification: {result!r}")

        raise PollTimeoutError(self._timeout_message())

    def _timeout_message(self) -> str:
        if self.initial_delay:
            total = self.max_polls * self.poll_interval
            return f"{self.label} timed out after {self.max_polls} polls ({total:g}s)"
        return f"{self.label} timed out after {self.max_polls} polls"
