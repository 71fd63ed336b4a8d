"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from threadsync.infrastructure import ServiceContainer, configure_logging, get_settings


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    A prebuilt ``container`` is used as-is and left open at shutdown; otherwise
    one is built from settings at startup and closed at shutdown.
    """
    settings = container.settings if container is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Environment: {settings.environment}")

        owned = container is None
        app.state.container = container or await ServiceContainer.create(settings)

        yield

        logger.info("Shutting down...")
        if owned:
            await app.state.container.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Email thread synchronization service",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from threadsync.api.routes import router

    app.include_router(router)

    return app


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
