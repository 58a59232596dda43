"""HTTP transport from the chat client to the proxy's /api/chat endpoint."""

import os
from dataclasses import dataclass, field

import httpx
import structlog

from frontend.core.errors import NetworkFailureError

logger = structlog.get_logger(__name__)

CHAT_PATH = "/api/chat"


@dataclass
class TransportResponse:
    """Raw outcome of one attempt: HTTP status plus the decoded JSON body.

    Attributes:
        status_code: HTTP status returned by the proxy.
        payload: Decoded JSON object, or an empty dict if the body was not one.
    """
    status_code: int
    payload: dict = field(default_factory=dict)

    @property
    def error(self) -> str | None:
        error = self.payload.get("error")
        return error if isinstance(error, str) else None


class ChatTransport:
    """Sends a single chat message and reports whatever came back.

    No timeout is configured on the client: the orchestrator owns the
    per-attempt deadline and abandons the request when it fires.
    """

    def __init__(self, base_url: str | None = None, client: httpx.AsyncClient | None = None):
        self.base_url = (base_url or os.environ.get("API_URL", "http://localhost:8000")).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=None)
        self._owns_client = client is None

    async def send(self, content: str) -> TransportResponse:
        """POST ``{"message": content}`` to the proxy.

        Raises:
            NetworkFailureError: If the proxy could not be reached at all.
        """
        url = f"{self.base_url}{CHAT_PATH}"
        try:
            response = await self._client.post(url, json={"message": content})
        except httpx.TransportError as e:
            logger.warning("transport.failed", url=url, error=str(e))
            raise NetworkFailureError(f"Cannot reach chat service: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        logger.debug("transport.response", status=response.status_code)
        return TransportResponse(status_code=response.status_code, payload=payload)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
