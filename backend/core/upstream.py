"""Client for the upstream completion backend.

A non-2xx answer surfaces as UpstreamError carrying the status so the proxy
can pass it through. Being unable to connect, or waiting past the read
timeout, surfaces as UpstreamUnavailableError / UpstreamTimeoutError.
"""

import os

import httpx
import structlog

logger = structlog.get_logger(__name__)


class UpstreamError(Exception):
    """The backend answered, but not with a completion."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class UpstreamUnavailableError(Exception):
    """The backend could not be reached."""
    pass


class UpstreamTimeoutError(UpstreamUnavailableError):
    """The backend accepted the request but never answered in time."""
    pass


class UpstreamClient:
    """Wraps an httpx.AsyncClient pointed at POST /complete."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or os.environ.get("MOCK_LLM_API_URL", "http://localhost:8080")).rstrip("/")
        # Longer than the client's per-attempt deadline, so a hang reaches the client as a timeout
        self.timeout = timeout if timeout is not None else float(os.environ.get("UPSTREAM_TIMEOUT_S", "30"))
        self._client = client or httpx.AsyncClient(timeout=self.timeout)
        self._owns_client = client is None

    async def complete(self, content: str) -> str:
        """Ask the backend for a completion.

        Args:
            content: The user's message.

        Returns:
            The completion text.

        Raises:
            UpstreamError: If the backend returns a non-2xx status or a body without a completion.
            UpstreamTimeoutError: If the backend does not answer within the timeout.
            UpstreamUnavailableError: If the backend cannot be reached.
        """
        url = f"{self.base_url}/complete"
        logger.debug("upstream.request", url=url, content_len=len(content))

        try:
            response = await self._client.post(url, json={"content": content})
        except httpx.TimeoutException as e:
            logger.warning("upstream.timeout", threshold=self.timeout)
            raise UpstreamTimeoutError(f"Backend timed out after {self.timeout:g}s") from e
        except httpx.TransportError as e:
            logger.error("upstream.unreachable", url=url, error=str(e))
            raise UpstreamUnavailableError(f"Failed to reach backend service: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.is_success:
            completion = payload.get("completion")
            if not isinstance(completion, str):
                logger.error("upstream.malformed", status=response.status_code)
                raise UpstreamError(502, "Invalid response from backend")
            return completion

        message = payload.get("error") or "Backend error"
        logger.warning("upstream.error_status", status=response.status_code, error=message)
        raise UpstreamError(response.status_code, str(message))

    async def is_healthy(self) -> bool:
        """Check whether the backend answers at all.

        Returns:
            True if GET /health returned anything below 500.
        """
        try:
            response = await self._client.get(f"{self.base_url}/health", timeout=2.0)
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
