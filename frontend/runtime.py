"""Background asyncio loop for hosting the chat session.

Streamlit reruns the script on its own thread, while the controller's
deadlines, backoff waits and auto-revert timers need a loop that outlives a
single rerun. The loop runs in a daemon thread; the UI thread hands work to
it and only reads snapshots back.
"""

import asyncio
import concurrent.futures
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class EventLoopThread:
    """An asyncio event loop running forever in a daemon thread."""

    def __init__(self, name: str = "minichat-loop"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()
        logger.info("runtime.started", thread=name)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule a coroutine on the loop and return a thread-safe future."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def call(self, fn: Callable[..., T], *args: Any, timeout: float | None = 5.0) -> T:
        """Run a plain callable on the loop thread and wait for its result.

        Store mutations go through here so the store keeps a single writer.
        """
        async def _invoke():
            return fn(*args)

        return self.submit(_invoke()).result(timeout=timeout)

    def stop(self) -> None:
        if not self._thread.is_alive():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        if not self._thread.is_alive():
            self._loop.close()
        logger.info("runtime.stopped")

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()
