"""Request orchestrator: deadline, cancellation and classified retry.

Each attempt races the network call against a hard deadline and the
cancellation token. Server faults (5xx) and transport failures are retried
with exponential backoff; a timeout is terminal, as is a 4xx.
"""

import asyncio
import os
from collections.abc import Callable

import structlog

from frontend.core.backoff import BackoffPolicy
from frontend.core.cancellation import CancellationToken
from frontend.core.errors import (
    InvalidRequestError,
    NetworkFailureError,
    RequestCancelledError,
    RequestTimedOutError,
    RetriesExhaustedError,
    ServiceUnavailableError,
)
from frontend.core.transport import ChatTransport, TransportResponse

logger = structlog.get_logger(__name__)

MAX_RETRIES = int(os.environ.get("CHAT_MAX_RETRIES", "3"))
ATTEMPT_TIMEOUT_MS = int(os.environ.get("CHAT_ATTEMPT_TIMEOUT_MS", "12000"))

# on_retry(attempt, delay_ms, reason)
RetryCallback = Callable[[int, int, str], None]


class RequestOrchestrator:
    """Owns the attempt loop for one send at a time."""

    def __init__(
        self,
        transport: ChatTransport,
        backoff: BackoffPolicy | None = None,
        max_retries: int | None = None,
        attempt_timeout_ms: int | None = None,
    ):
        self._transport = transport
        self.backoff = backoff or BackoffPolicy()
        self.max_retries = MAX_RETRIES if max_retries is None else max_retries
        self.attempt_timeout_ms = ATTEMPT_TIMEOUT_MS if attempt_timeout_ms is None else attempt_timeout_ms

    async def send(
        self,
        content: str,
        token: CancellationToken,
        on_retry: RetryCallback | None = None,
    ) -> str:
        """Deliver ``content`` and return the completion text.

        Args:
            content: Already-validated user message.
            token: Cancellation token for this send.
            on_retry: Called before each backoff wait with the new attempt
                number, the wait in milliseconds and the failure reason.

        Returns:
            The completion text from the first successful attempt.

        Raises:
            RequestCancelledError: The token was cancelled (beats any other outcome).
            RequestTimedOutError: An attempt hit the deadline. Never retried.
            InvalidRequestError: The proxy rejected the input (4xx).
            ServiceUnavailableError: The proxy answered with an unusable response.
            RetriesExhaustedError: 5xx or transport failures outlasted max_retries.
        """
        attempt = 0
        while True:
            if token.is_cancelled:
                logger.info("orchestrator.cancelled", attempt=attempt, phase="before_attempt")
                raise RequestCancelledError("Request cancelled", retry_count=attempt)

            logger.debug("orchestrator.attempt", attempt=attempt, max_retries=self.max_retries)
            try:
                response = await self._attempt(content, token, attempt)
            except NetworkFailureError as e:
                reason, last_error = "network_failure", str(e)
            else:
                completion = self._classify(response, attempt)
                if completion is not None:
                    logger.info("orchestrator.success", attempt=attempt)
                    return completion
                reason = "server_fault"
                last_error = response.error or f"Server error ({response.status_code})"

            if attempt >= self.max_retries:
                logger.error("orchestrator.retries_exhausted", attempts=attempt + 1,
                             reason=reason, error=last_error)
                raise RetriesExhaustedError(
                    "Service temporarily unavailable. Please try again.",
                    retry_count=attempt,
                    last_error=last_error,
                )

            attempt += 1
            delay_ms = self.backoff.delay_for_attempt(attempt)
            logger.warning("orchestrator.retry", attempt=attempt, max_retries=self.max_retries,
                           delay_ms=delay_ms, reason=reason, error=last_error)
            if on_retry is not None:
                on_retry(attempt, delay_ms, reason)
            await self._wait_backoff(delay_ms, token, attempt)

    async def _attempt(
        self, content: str, token: CancellationToken, attempt: int
    ) -> TransportResponse:
        """Race one network call against the deadline and the token."""
        attempt_task = asyncio.ensure_future(self._transport.send(content))
        attempt_task.add_done_callback(_discard_result)
        cancel_task = asyncio.ensure_future(token.wait())
        timeout_s = self.attempt_timeout_ms / 1000

        try:
            done, _ = await asyncio.wait(
                {attempt_task, cancel_task},
                timeout=timeout_s,
                return_when=asyncio.FIRST_COMPLETED,
            )

            # Cancellation wins even if the response landed in the same tick
            if token.is_cancelled:
                logger.info("orchestrator.cancelled", attempt=attempt, phase="in_flight")
                raise RequestCancelledError("Request cancelled", retry_count=attempt)

            if attempt_task not in done:
                logger.warning("orchestrator.timeout", attempt=attempt, threshold_ms=self.attempt_timeout_ms)
                raise RequestTimedOutError(
                    f"Request timed out after {timeout_s:g} seconds. Please try again.",
                    retry_count=attempt,
                )

            return attempt_task.result()
        finally:
            for task in (attempt_task, cancel_task):
                if not task.done():
                    task.cancel()

    async def _wait_backoff(self, delay_ms: int, token: CancellationToken, attempt: int) -> None:
        """Sleep between attempts, waking early if the token is cancelled."""
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({cancel_task}, timeout=delay_ms / 1000)
        finally:
            if not cancel_task.done():
                cancel_task.cancel()

        if token.is_cancelled:
            logger.info("orchestrator.cancelled", attempt=attempt, phase="backoff")
            raise RequestCancelledError("Request cancelled", retry_count=attempt)

    @staticmethod
    def _classify(response: TransportResponse, attempt: int) -> str | None:
        """Turn a response into completion text, None for a retryable 5xx, or an error."""
        status = response.status_code

        if 200 <= status < 300:
            completion = response.payload.get("completion")
            if isinstance(completion, str):
                return completion
            logger.error("orchestrator.malformed_response", status=status)
            raise ServiceUnavailableError("Malformed response from chat service", retry_count=attempt)

        if 400 <= status < 500:
            logger.error("orchestrator.4xx", status=status, error=response.error)
            raise InvalidRequestError(response.error or f"Request rejected ({status})", retry_count=attempt)

        if 500 <= status < 600:
            return None

        logger.error("orchestrator.unexpected_status", status=status)
        raise ServiceUnavailableError(f"Unexpected response from chat service ({status})", retry_count=attempt)


def _discard_result(task: asyncio.Future) -> None:
    """Consume an abandoned attempt's outcome so it is never reported or applied."""
    if not task.cancelled():
        task.exception()
