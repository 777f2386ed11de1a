"""
Relay API

FastAPI entry point. ``create_app()`` assembles routers, middleware and
error handlers; the lifespan wires the agent service and data services
onto ``app.state``.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from relay.config import settings
from relay.api.routes import agents, chat, health, users
from relay.core.agent.dispatch import build_agent_service
from relay.infra.claude import ClaudeClient
from relay.infra.database import close_db, init_db
from relay.services.conversation import ConversationService
from relay.services.user import UserService

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def setup_logging() -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Third-party loggers stay quiet unless debugging
    for name in ("uvicorn.access", "httpx", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build process-scoped services on startup, release them on shutdown."""
    setup_logging()
    logger.info(f"Starting {settings.app_name} ({settings.app_env})")
    health.set_start_time()

    if settings.is_development:
        try:
            await init_db()
        except Exception as e:
            logger.warning(f"Could not create tables, continuing without: {e}")

    conversations = ConversationService()
    user_service = UserService()
    app.state.conversation_service = conversations
    app.state.user_service = user_service
    app.state.agent_service = build_agent_service(
        conversations=conversations,
        users=user_service,
    )
    logger.info(f"Agents ready: {[a['type'] for a in app.state.agent_service.list_handlers()]}")

    yield

    logger.info("Shutting down")
    if ClaudeClient._instance is not None:
        await ClaudeClient._instance.close()
        ClaudeClient.reset_instance()
    await close_db()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Report route errors as ``{"error": message}``."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation Error", "details": jsonable_encoder(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    # Internal messages are only shown in development
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.is_development else None,
        },
    )


def create_app(with_lifespan: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        with_lifespan: Attach the startup/shutdown wiring. Tests pass False
            and populate ``app.state`` themselves.
    """
    app = FastAPI(
        title="Relay API",
        description="Routes customer support messages to support, order and billing agents.",
        version="1.0.0",
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan if with_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for module in (chat, agents, users, health):
        app.include_router(module.router, prefix=API_PREFIX)

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        return {
            "name": settings.app_name,
            "version": app.version,
            "environment": settings.app_env,
            "health": f"{API_PREFIX}/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "relay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
