"""FastAPI application entry point for the chat proxy.

Startup sequence: configure upstream client → serve. The proxy validates the
message, forwards it to the completion backend and relays the result.
"""

from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from backend.api.routes import error_response, router
from backend.core.upstream import UpstreamClient

load_dotenv()

logger = structlog.get_logger(__name__)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report body validation failures as 400 ``{"error": ...}`` instead of 422."""
    message = "Message cannot be empty"
    for error in exc.errors():
        if error.get("type") == "json_invalid":
            message = "Invalid JSON body"
            break
        ctx_error = error.get("ctx", {}).get("error")
        if isinstance(ctx_error, ValueError):
            message = str(ctx_error)
            break

    logger.info("chat.rejected", reason=message)
    return error_response(400, message)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return error_response(500, "Internal server error")


def create_app(upstream: UpstreamClient | None = None) -> FastAPI:
    """Build the proxy app.

    Args:
        upstream: Pre-built upstream client (tests inject one backed by the mock
            app). When omitted, one is created from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("startup.begin")

        owns_upstream = app.state.upstream is None
        if owns_upstream:
            app.state.upstream = UpstreamClient()
        logger.info("startup.upstream_configured", url=app.state.upstream.base_url,
                    timeout=app.state.upstream.timeout)

        logger.info("startup.complete")
        yield

        if owns_upstream:
            await app.state.upstream.close()
            app.state.upstream = None
        logger.info("shutdown.complete")

    app = FastAPI(
        title="MiniChat API",
        description="Chat proxy in front of the completion backend",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.upstream = upstream

    # CORS for the chat frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    return app


app = create_app()
