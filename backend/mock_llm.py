"""Mock completion backend implementing POST /complete.

Randomly hangs forever, fails with a 500 or replies after a short delay, so
the client's deadline, retry and backoff paths all get exercised. For tests,
``fail_first`` and ``always_hang`` make the behavior deterministic.

Run with:
  uvicorn backend.mock_llm:app --port 8080
"""

import asyncio
import os
import random
from dataclasses import dataclass

import structlog
from fastapi import FastAPI
from starlette.responses import JSONResponse

from backend.api.schemas import CompleteRequest, CompleteResponse

logger = structlog.get_logger(__name__)

MOCK_REPLY = "This is a mock response from a pretend LLM."


@dataclass
class MockBehavior:
    """How the mock backend misbehaves.

    Attributes:
        hang_rate: Probability that a request never gets an answer.
        failure_rate: Probability of a 500 (checked after hang_rate).
        min_delay_ms: Lower bound of the reply delay.
        max_delay_ms: Upper bound of the reply delay.
        fail_first: The first N requests always fail with a 500.
        always_hang: Every request hangs.
        reply: Completion text for successful requests.
    """
    hang_rate: float = 0.1
    failure_rate: float = 0.2
    min_delay_ms: int = 500
    max_delay_ms: int = 2000
    fail_first: int = 0
    always_hang: bool = False
    reply: str = MOCK_REPLY

    @classmethod
    def from_env(cls) -> "MockBehavior":
        return cls(
            hang_rate=float(os.environ.get("MOCK_LLM_HANG_RATE", "0.1")),
            failure_rate=float(os.environ.get("MOCK_LLM_FAILURE_RATE", "0.2")),
            min_delay_ms=int(os.environ.get("MOCK_LLM_MIN_DELAY_MS", "500")),
            max_delay_ms=int(os.environ.get("MOCK_LLM_MAX_DELAY_MS", "2000")),
        )


class MockLLM:
    """Decides the fate of each request and counts them."""

    def __init__(self, behavior: MockBehavior | None = None, rng: random.Random | None = None):
        self.behavior = behavior or MockBehavior.from_env()
        self.calls = 0
        self._rng = rng or random.Random()

    async def complete(self, content: str) -> JSONResponse:
        self.calls += 1
        call = self.calls
        behavior = self.behavior

        if behavior.always_hang or self._rng.random() < behavior.hang_rate:
            logger.info("mock_llm.hang", call=call)
            await asyncio.Event().wait()

        if call <= behavior.fail_first or self._rng.random() < behavior.failure_rate:
            logger.info("mock_llm.failure", call=call)
            return JSONResponse(status_code=500, content={"error": "mock-llm failure"})

        logger.info("mock_llm.request", call=call, content_len=len(content))
        delay_ms = self._rng.randint(behavior.min_delay_ms, max(behavior.min_delay_ms, behavior.max_delay_ms))
        await asyncio.sleep(delay_ms / 1000)
        return JSONResponse(content=CompleteResponse(completion=behavior.reply).model_dump())


def create_mock_app(behavior: MockBehavior | None = None, rng: random.Random | None = None) -> FastAPI:
    """Build the mock backend app around a MockLLM."""
    mock = MockLLM(behavior, rng)
    app = FastAPI(title="Mock LLM", version="0.1.0")
    app.state.mock = mock

    @app.post("/complete")
    async def complete(body: CompleteRequest):
        return await mock.complete(body.content)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "mock-llm", "calls": mock.calls}

    return app


app = create_mock_app()
