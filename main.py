"""Main entry point for running the Stratus API server."""

import os

import uvicorn
from loguru import logger

from src.core.config import get_settings
from src.core.logging import setup_logging

APP_FACTORY = "src.api.main:create_app"


def main() -> None:
    """Run the API under uvicorn with logging routed through loguru."""
    settings = get_settings()
    setup_logging(settings)

    # Cloud Run and similar platforms dictate the port
    port = int(os.environ.get("PORT", settings.api_port))

    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {
                "class": "src.core.logging.InterceptHandler",
            },
        },
        "loggers": {
            name: {"handlers": ["default"], "level": "INFO", "propagate": False}
            for name in ("uvicorn", "uvicorn.error", "uvicorn.access")
        },
    }

    mode = "development mode with auto-reload" if settings.debug else "production mode"
    logger.info(
        "Starting Uvicorn on http://{}:{} ({})", settings.api_host, port, mode
    )
    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host=settings.api_host,
        port=port,
        reload=settings.debug,
        log_config=log_config,
    )


if __name__ == "__main__":
    main()
