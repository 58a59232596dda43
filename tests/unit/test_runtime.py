"""Unit tests for the background event loop thread."""

import asyncio
import threading

import pytest

from frontend.runtime import EventLoopThread


@pytest.fixture
def runtime():
    runtime = EventLoopThread(name="test-loop")
    yield runtime
    runtime.stop()


class TestEventLoopThread:

    def test_submit_runs_coroutine(self, runtime):
        async def add(a, b):
            await asyncio.sleep(0)
            return a + b

        assert runtime.submit(add(2, 3)).result(timeout=1) == 5

    def test_call_runs_on_loop_thread(self, runtime):
        thread_name = runtime.call(lambda: threading.current_thread().name)
        assert thread_name == "test-loop"

    def test_call_propagates_errors(self, runtime):
        def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            runtime.call(boom)

    def test_stop(self):
        runtime = EventLoopThread(name="stopping-loop")
        runtime.stop()
        assert runtime.loop.is_closed()
        runtime.stop()
