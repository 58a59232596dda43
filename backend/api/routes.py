"""FastAPI endpoints for the MiniChat proxy.

POST /api/chat - forward a user message to the completion backend
GET /health - upstream health check
GET / - root liveness probe
"""

import time

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from backend.api.schemas import ChatRequest, ChatResponse, ErrorResponse
from backend.core.upstream import (
    UpstreamError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def error_response(status_code: int, message: str) -> JSONResponse:
    """Build the ``{"error": ...}`` body every failure uses."""
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/api/chat",
    response_model=ChatResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def chat(request: ChatRequest, req: Request):
    """Proxy a message to POST /complete and relay the completion."""
    start = time.monotonic()
    upstream = req.app.state.upstream

    logger.info("chat.request", msg_len=len(request.message))

    try:
        completion = await upstream.complete(request.message)
    except UpstreamError as e:
        logger.warning("chat.upstream_error", status=e.status_code, error=e.message)
        return error_response(e.status_code, e.message)
    except UpstreamTimeoutError as e:
        logger.error("chat.upstream_timeout", error=str(e))
        return error_response(504, "Backend timed out")
    except UpstreamUnavailableError as e:
        logger.error("chat.upstream_unreachable", error=str(e))
        return error_response(502, "Failed to reach backend service")

    latency_ms = int((time.monotonic() - start) * 1000)
    logger.info("chat.response", latency_ms=latency_ms, completion_len=len(completion))
    return ChatResponse(completion=completion)


@router.get("/health")
async def health(req: Request):
    """Report whether the completion backend answers."""
    upstream = req.app.state.upstream
    healthy = await upstream.is_healthy()

    return {
        "status": "healthy" if healthy else "degraded",
        "components": {"upstream": "ok" if healthy else "error"},
        "upstream_url": upstream.base_url,
    }


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms."""
    return {"status": "ok", "service": "minichat-api"}
