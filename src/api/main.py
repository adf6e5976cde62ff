"""FastAPI application factory.

``create_app`` wires logging, tracing, the store backend, the service
container, middleware, exception handlers and routers. Middleware run in
reverse order of registration; the resulting request flow is:

1. Request context (correlation ID, context cleanup)
2. Request logging
3. Authentication (credential and identity for protected paths)
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from fastapi import FastAPI
from loguru import logger

from src.api.container import ServiceContainer, build_container
from src.api.dependencies import Container
from src.api.middleware.authentication import AuthenticationMiddleware
from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.request_logging import RequestLoggingMiddleware
from src.api.routers import ROUTERS
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging
from src.core.observability import instrument_app, setup_tracing
from src.infrastructure.store.factory import (
    StoreBackend,
    check_store_connection,
    close_store_backend,
    get_store_backend,
)


def _lifespan(
    owns_backend: bool,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
        """Verify the store on startup and release it on shutdown.

        Raises:
            RuntimeError: If the store cannot be reached during startup.
        """
        container: ServiceContainer = app_instance.state.container

        is_healthy, error_msg = await check_store_connection(container.backend.privileged)
        if not is_healthy:
            logger.error("Store connection failed during startup: {}", error_msg)
            msg = f"Store connection failed: {error_msg}"
            raise RuntimeError(msg)

        logger.info(
            "Application startup complete - {} v{}",
            app_instance.title,
            app_instance.version,
        )

        yield

        logger.info("Application shutdown initiated")
        if owns_backend:
            await close_store_backend()
        logger.info("Application shutdown complete")

    return lifespan


def create_app(
    settings: Settings | None = None, backend: StoreBackend | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        backend: Store backend to serve from. Defaults to the process-wide
            backend selected by ``store_config``, which is then closed on
            shutdown; a backend passed in stays owned by the caller.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    owns_backend = backend is None
    container = build_container(settings, backend or get_store_backend())

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=_lifespan(owns_backend),
    )
    application.state.settings = settings
    application.state.container = container

    register_exception_handlers(application)

    # 3. Authentication (innermost)
    application.add_middleware(
        AuthenticationMiddleware,
        resolver_provider=lambda: application.state.container.identity_resolver,
    )
    # 2. Request logging
    application.add_middleware(
        RequestLoggingMiddleware,
        log_config=settings.log_config,
        trust_proxy_headers=settings.environment == "production",
    )
    # 1. Request context (outermost)
    application.add_middleware(RequestContextMiddleware)

    @application.get("/")
    async def root(container: Container) -> dict[str, Any]:
        """Entry point listing the API roots."""
        base_url = container.settings.external_url
        return {
            "links": {
                "self": {"href": base_url},
                "cloud_controller_v3": {"href": f"{base_url}/v3"},
            },
        }

    @application.get("/health")
    async def health(container: Container) -> dict[str, object]:
        """Health check for orchestrators and load balancers.

        Reports "degraded" rather than failing when the store is unreachable.
        """
        is_healthy, error_msg = await check_store_connection(container.backend.privileged)
        health_status: dict[str, object] = {"status": "healthy", "store": is_healthy}
        if not is_healthy:
            logger.warning("Store health check failed: {}", error_msg)
            health_status["status"] = "degraded"
        return health_status

    @application.get("/info")
    async def info(container: Container) -> dict[str, Any]:
        """Get application information."""
        app_settings = container.settings
        return {
            "app_name": app_settings.app_name,
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "debug": app_settings.debug,
            "store_backend": app_settings.store_config.backend,
        }

    for router in ROUTERS:
        application.include_router(router)

    instrument_app(application, settings)

    return application
