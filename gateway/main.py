"""Main FastAPI application."""

import time
from contextlib import asynccontextmanager

from cuid2 import cuid_wrapper
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from gateway import __version__
from gateway.api.endpoints import router
from gateway.api.envelope import register_exception_handlers
from gateway.config import Settings
from gateway.dependencies import ServiceContainer, create_container
from gateway.services.media_store import MediaKind
from gateway.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)

request_id = cuid_wrapper()


def create_app(settings: Settings | None = None, container: ServiceContainer | None = None) -> FastAPI:
    """Create the gateway application.

    Args:
        settings: Settings to use, loaded from the environment when omitted
        container: Prebuilt services; built during startup when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or (container.settings if container else Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(LogConfig(level=settings.log_level))
        owns_container = app.state.container is None
        if owns_container:
            app.state.container = await create_container(settings)
        logger.info(f"Gateway {__version__} started")
        yield
        if owns_container:
            await app.state.container.close()

    app = FastAPI(
        title="Multimodal Chat Gateway",
        description=(
            "Conversational gateway that routes chat, tool use and media generation "
            "to upstream model providers."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Chat", "description": "Conversational turns with optional memory and knowledge tools."},
            {"name": "Media", "description": "Image, speech and video generation."},
            {"name": "Conversations", "description": "Stored conversation history."},
            {"name": "Models", "description": "Model catalog."},
            {"name": "Memory", "description": "Short and long-term user memory."},
            {"name": "Health", "description": "Service health monitoring and status checks."},
        ],
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request.state.started_at = time.perf_counter()
        request.state.request_id = request.headers.get("x-request-id") or request_id()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    register_exception_handlers(app)
    app.include_router(router)

    for kind in MediaKind:
        directory = f"{settings.media_root}/{kind.value}"
        app.mount(kind.url_prefix, StaticFiles(directory=directory, check_dir=False), name=f"generated-{kind.value}")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("gateway.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
