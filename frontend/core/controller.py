"""Chat session controller: the glue between the UI, store and orchestrator.

    idle --send--> loading
    loading --success--> success --(100ms)--> idle
    loading --cancelled|timeout|error--> terminal --(5000ms)--> idle

The user message is appended before the orchestrator runs; on success the
assistant message is appended before ``success`` is published, so observers
never see success without the reply present.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import replace

import structlog

from frontend.core.cancellation import CancellationToken
from frontend.core.errors import (
    ChatError,
    InvalidRequestError,
    RequestCancelledError,
    RequestInFlightError,
    RequestTimedOutError,
    ServiceUnavailableError,
)
from frontend.core.models import Message, MessageStatus, RequestState, RequestStatus
from frontend.core.orchestrator import RequestOrchestrator
from frontend.core.store import ConversationStore

logger = structlog.get_logger(__name__)

MAX_MESSAGE_LENGTH = 4000
SUCCESS_REVERT_MS = 100
FAILURE_REVERT_MS = 5000

CANCELLED_TEXT = "Request cancelled"
TIMEOUT_TEXT = "Request took too long. Please try again."
UNAVAILABLE_TEXT = "Service temporarily unavailable. Please try again."
UNEXPECTED_TEXT = "Something went wrong. Please try again."

RequestListener = Callable[[RequestState], None]


def validate_message(content: str) -> str:
    """Trim and check a message before anything is sent.

    Raises:
        InvalidRequestError: If the message is empty or longer than 4000 characters.
    """
    text = content.strip()
    if not text:
        raise InvalidRequestError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise InvalidRequestError(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")
    return text


def _failure_outcome(error: BaseException) -> tuple[RequestStatus, MessageStatus, str]:
    """Map a failure to (request status, message status, user-facing text)."""
    if isinstance(error, (RequestCancelledError, asyncio.CancelledError)):
        return RequestStatus.CANCELLED, MessageStatus.CANCELLED, CANCELLED_TEXT
    if isinstance(error, RequestTimedOutError):
        return RequestStatus.TIMEOUT, MessageStatus.ERROR, TIMEOUT_TEXT
    if isinstance(error, ServiceUnavailableError):
        return RequestStatus.ERROR, MessageStatus.ERROR, UNAVAILABLE_TEXT
    if isinstance(error, ChatError):
        return RequestStatus.ERROR, MessageStatus.ERROR, str(error) or UNEXPECTED_TEXT
    return RequestStatus.ERROR, MessageStatus.ERROR, UNEXPECTED_TEXT


class ChatSessionController:
    """Runs one send at a time and owns the RequestState the UI observes."""

    def __init__(
        self,
        store: ConversationStore,
        orchestrator: RequestOrchestrator,
        success_revert_ms: int = SUCCESS_REVERT_MS,
        failure_revert_ms: int = FAILURE_REVERT_MS,
    ):
        self._store = store
        self._orchestrator = orchestrator
        self._success_revert_ms = success_revert_ms
        self._failure_revert_ms = failure_revert_ms
        self._state = RequestState()
        self._token: CancellationToken | None = None
        self._revert_handle: asyncio.TimerHandle | None = None
        self._listeners: list[RequestListener] = []

    @property
    def request_state(self) -> RequestState:
        return replace(self._state)

    @property
    def is_busy(self) -> bool:
        return self._state.status is RequestStatus.LOADING

    def subscribe(self, listener: RequestListener) -> Callable[[], None]:
        """Call ``listener`` with every RequestState published from now on.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def send(self, content: str) -> Message | None:
        """Send a user message and record the outcome.

        Args:
            content: Raw text from the input box.

        Returns:
            The assistant message on success; None if the send failed, was
            cancelled, or there is no active conversation.

        Raises:
            InvalidRequestError: Empty or oversized input (nothing is appended).
            RequestInFlightError: Another send is still loading.
        """
        text = validate_message(content)
        if self.is_busy:
            raise RequestInFlightError("A message is already being sent")
        if self._store.active_conversation_id is None:
            logger.warning("session.no_active_conversation")
            return None

        # A new send replaces any pending auto-revert
        self._cancel_revert()

        user_message = Message.user(text)
        self._store.append_message(user_message)
        token = CancellationToken()
        self._token = token
        self._publish(RequestState(status=RequestStatus.LOADING, start_time=time.monotonic()))
        logger.info("session.send", message_id=user_message.id, msg_len=len(text))

        try:
            completion = await self._orchestrator.send(text, token, on_retry=self._on_retry)
        except asyncio.CancelledError as e:
            self._finish_failed(user_message, e)
            raise
        except ChatError as e:
            self._finish_failed(user_message, e)
            return None
        except Exception as e:
            logger.error("session.unexpected_failure", error=str(e))
            self._finish_failed(user_message, e)
            return None
        finally:
            self._token = None

        if token.is_cancelled:
            # cancel() landed after the attempt settled; the reply is dropped
            self._finish_failed(user_message, RequestCancelledError(CANCELLED_TEXT))
            return None

        self._store.update_message_status(user_message.id, MessageStatus.SENT)
        assistant_message = Message.assistant(completion)
        self._store.append_message(assistant_message)
        self._publish(replace(self._state, status=RequestStatus.SUCCESS, error=None))
        self._schedule_revert(self._success_revert_ms)

        logger.info("session.success", message_id=user_message.id,
                    retries=self._state.retry_count, latency_ms=self._elapsed_ms())
        return assistant_message

    def cancel(self) -> None:
        """Cancel the in-flight send, if any. Safe to call from any thread."""
        token = self._token
        if token is None:
            return
        logger.info("session.cancel_requested")
        token.cancel()

    def close(self) -> None:
        """Teardown: abandon whatever is in flight.

        Called by ChatApp.close() when the process shuts down.
        """
        self.cancel()

    def _on_retry(self, attempt: int, delay_ms: int, reason: str) -> None:
        self._publish(replace(self._state, retry_count=attempt))

    def _finish_failed(self, user_message: Message, error: BaseException) -> None:
        request_status, message_status, text = _failure_outcome(error)
        retry_count = getattr(error, "retry_count", self._state.retry_count)

        self._store.update_message_status(user_message.id, message_status)
        self._publish(replace(self._state, status=request_status, error=text, retry_count=retry_count))
        self._schedule_revert(self._failure_revert_ms)

        logger.info("session.failed", message_id=user_message.id, status=request_status.value,
                    error_type=type(error).__name__, latency_ms=self._elapsed_ms())

    def _publish(self, state: RequestState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(replace(state))

    def _schedule_revert(self, delay_ms: int) -> None:
        self._cancel_revert()
        loop = asyncio.get_running_loop()
        self._revert_handle = loop.call_later(delay_ms / 1000, self._revert_to_idle)

    def _cancel_revert(self) -> None:
        if self._revert_handle is not None:
            self._revert_handle.cancel()
            self._revert_handle = None

    def _revert_to_idle(self) -> None:
        self._revert_handle = None
        self._publish(RequestState())

    def _elapsed_ms(self) -> int | None:
        if self._state.start_time is None:
            return None
        return int((time.monotonic() - self._state.start_time) * 1000)
