"""Cooperative cancellation shared between a caller and an in-flight send."""

import asyncio
import contextlib
import threading
from collections.abc import Callable

import structlog

from frontend.core.errors import RequestCancelledError

logger = structlog.get_logger(__name__)


class CancellationToken:
    """One-shot cancellation flag.

    ``cancel()`` may be called from any thread or task; awaiting ``wait()``
    on the event loop completes once the token is cancelled.
    """

    def __init__(self):
        self._cancelled = False
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the token. Calling it again does nothing."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []

        logger.debug("cancellation.cancelled", callbacks=len(callbacks))
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` once on cancellation, right away if already cancelled.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)

        callback()
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError("Request cancelled")

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _resolve():
            if not future.done():
                future.set_result(None)

        def _wake():
            # cancel() can run on another thread after this loop has closed
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(_resolve)

        remove = self.add_callback(_wake)
        try:
            await future
        finally:
            remove()

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
