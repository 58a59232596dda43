"""Process-wide chat core shared by every browser session.

AppState has a single writer, so the store, the controller that sends into it
and the loop they run on are built once per process. Browser sessions only
hold references to them.
"""

import asyncio
import concurrent.futures

import structlog

from frontend.core.controller import ChatSessionController
from frontend.core.orchestrator import RequestOrchestrator
from frontend.core.storage import StateStorage
from frontend.core.store import ConversationStore
from frontend.core.transport import ChatTransport
from frontend.runtime import EventLoopThread

logger = structlog.get_logger(__name__)

SHUTDOWN_TIMEOUT_S = 5.0


class ChatApp:
    """Owns the event loop thread, the conversation store and the controller."""

    def __init__(
        self,
        runtime: EventLoopThread,
        store: ConversationStore,
        controller: ChatSessionController,
        transport: ChatTransport | None = None,
    ):
        self.runtime = runtime
        self.store = store
        self.controller = controller
        self._transport = transport
        self._closed = False

    @classmethod
    def create(
        cls,
        database_url: str | None = None,
        api_url: str | None = None,
        transport=None,
    ) -> "ChatApp":
        """Start the loop, load the persisted conversations and wire the controller.

        Args:
            database_url: Passed to StateStorage (DATABASE_URL env var when omitted).
            api_url: Proxy base URL for the default ChatTransport.
            transport: Pre-built transport; the app does not close one it did not create.
        """
        runtime = EventLoopThread()
        store = ConversationStore(StateStorage(database_url))
        runtime.call(store.initialize)

        owned_transport = None
        if transport is None:
            transport = owned_transport = ChatTransport(api_url)
        controller = ChatSessionController(store, RequestOrchestrator(transport))

        logger.info("chat_app.started", conversations=len(store.conversations))
        return cls(runtime, store, controller, owned_transport)

    def close(self) -> None:
        """Cancel any in-flight send, let it settle, then stop the loop."""
        if self._closed:
            return
        self._closed = True

        try:
            self.runtime.submit(self._shutdown()).result(timeout=SHUTDOWN_TIMEOUT_S)
        except concurrent.futures.TimeoutError:
            logger.warning("chat_app.shutdown_timeout", timeout=SHUTDOWN_TIMEOUT_S)
        self.runtime.stop()
        logger.info("chat_app.closed")

    async def _shutdown(self) -> None:
        self.controller.close()
        while self.controller.is_busy:
            await asyncio.sleep(0.01)
        if self._transport is not None:
            await self._transport.close()
