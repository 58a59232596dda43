"""Error taxonomy for the chat request pipeline.

The orchestrator raises these; the session controller maps each one to a
single request status and user-facing message.
"""


class ChatError(Exception):
    """Base class for every failure a send can end in."""

    def __init__(self, message: str = "", retry_count: int = 0):
        super().__init__(message)
        self.retry_count = retry_count


class InvalidRequestError(ChatError):
    """Empty or oversized input, or a 4xx from the proxy. Never retried."""
    pass


class RequestCancelledError(ChatError):
    """The user (or teardown) cancelled the send."""
    pass


class RequestTimedOutError(ChatError):
    """An attempt exceeded its deadline. Terminal, not retried."""
    pass


class ServiceUnavailableError(ChatError):
    """The service answered with something we cannot use."""
    pass


class RetriesExhaustedError(ServiceUnavailableError):
    """Server faults or transport failures outlasted the retry budget."""

    def __init__(self, message: str = "", retry_count: int = 0, last_error: str | None = None):
        super().__init__(message, retry_count=retry_count)
        self.last_error = last_error


class NetworkFailureError(ChatError):
    """Transport-level failure (connection refused, reset, DNS)."""
    pass


class RequestInFlightError(ChatError):
    """A send was attempted while another one is still loading."""
    pass


class PersistenceError(Exception):
    """Writing the conversation state to storage failed."""
    pass
