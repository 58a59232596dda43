"""Contract tests for the upstream client (httpx.MockTransport, no network)."""

import json

import httpx
import pytest

from backend.core.upstream import (
    UpstreamClient,
    UpstreamError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)


def make_client(handler) -> UpstreamClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UpstreamClient(base_url="http://mock-llm:8080/", timeout=1.0, client=http)


class TestComplete:

    @pytest.mark.asyncio
    async def test_returns_completion(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"completion": "Hi!"})

        result = await make_client(handler).complete("Hello")

        assert result == "Hi!"
        assert str(seen[0].url) == "http://mock-llm:8080/complete"
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"content": "Hello"}

    @pytest.mark.asyncio
    async def test_error_status_carries_backend_message(self):
        client = make_client(lambda request: httpx.Response(500, json={"error": "mock-llm failure"}))

        with pytest.raises(UpstreamError) as exc:
            await client.complete("Hello")

        assert exc.value.status_code == 500
        assert exc.value.message == "mock-llm failure"

    @pytest.mark.asyncio
    async def test_error_status_without_body(self):
        client = make_client(lambda request: httpx.Response(503, text="Service Unavailable"))

        with pytest.raises(UpstreamError) as exc:
            await client.complete("Hello")

        assert exc.value.status_code == 503
        assert exc.value.message == "Backend error"

    @pytest.mark.asyncio
    async def test_success_without_completion_is_502(self):
        client = make_client(lambda request: httpx.Response(200, json={"text": "wrong key"}))

        with pytest.raises(UpstreamError) as exc:
            await client.complete("Hello")

        assert exc.value.status_code == 502
        assert exc.value.message == "Invalid response from backend"

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailableError) as exc:
            await make_client(handler).complete("Hello")
        assert not isinstance(exc.value, UpstreamTimeoutError)

    @pytest.mark.asyncio
    async def test_read_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamTimeoutError):
            await make_client(handler).complete("Hello")


class TestHealth:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, expected", [(200, True), (404, True), (500, False)])
    async def test_status_codes(self, status, expected):
        client = make_client(lambda request: httpx.Response(status))
        assert await client.is_healthy() is expected

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert await make_client(handler).is_healthy() is False


class TestConfig:

    def test_env_defaults(self, monkeypatch):
        monkeypatch.delenv("MOCK_LLM_API_URL", raising=False)
        monkeypatch.setenv("UPSTREAM_TIMEOUT_S", "12.5")

        client = UpstreamClient(client=httpx.AsyncClient())

        assert client.base_url == "http://localhost:8080"
        assert client.timeout == 12.5
