"""Shared fixtures for all tests."""

import asyncio

import pytest

from frontend.core.backoff import BackoffPolicy
from frontend.core.orchestrator import RequestOrchestrator
from frontend.core.storage import StateStorage
from frontend.core.store import ConversationStore
from frontend.core.transport import TransportResponse


class ScriptedTransport:
    """Stands in for ChatTransport, replaying one scripted outcome per call.

    Outcomes are TransportResponse objects, exceptions to raise, or HANG for
    a request that never answers. The last outcome repeats once the script
    runs out.
    """

    HANG = "hang"

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes)
        self.calls = 0
        self.sent: list[str] = []

    @staticmethod
    def ok(completion: str = "Hi there") -> TransportResponse:
        return TransportResponse(status_code=200, payload={"completion": completion})

    @staticmethod
    def server_error(error: str = "mock-llm failure") -> TransportResponse:
        return TransportResponse(status_code=500, payload={"error": error})

    @staticmethod
    def bad_request(error: str = "Message cannot be empty") -> TransportResponse:
        return TransportResponse(status_code=400, payload={"error": error})

    async def send(self, content: str) -> TransportResponse:
        self.calls += 1
        self.sent.append(content)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]

        if isinstance(outcome, str) and outcome == self.HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def scripted_transport():
    return ScriptedTransport


@pytest.fixture
def fast_backoff() -> BackoffPolicy:
    """1ms, 2ms, 4ms instead of 1s, 2s, 4s."""
    return BackoffPolicy(base_delay_ms=1)


@pytest.fixture
def make_orchestrator(fast_backoff):
    def _make(transport, attempt_timeout_ms: int = 1000, max_retries: int = 3, backoff=None):
        return RequestOrchestrator(
            transport,
            backoff=backoff or fast_backoff,
            max_retries=max_retries,
            attempt_timeout_ms=attempt_timeout_ms,
        )
    return _make


@pytest.fixture
def storage() -> StateStorage:
    """Fresh in-memory database for each test."""
    return StateStorage("sqlite:///:memory:")


@pytest.fixture
def store(storage) -> ConversationStore:
    store = ConversationStore(storage)
    store.initialize()
    return store
