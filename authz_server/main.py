"""Main entry point for the authorization server."""

import asyncio
import sys

from .shared.config import Config, get_config
from .shared.logger import log_error, log_info
from .shared.python_logger_config import setup_python_logging


async def run_server(config: Config) -> None:
    """Build the application and serve it with Hypercorn."""
    from hypercorn.asyncio import serve
    from hypercorn.config import Config as HypercornConfig

    from .app import create_app

    app = create_app()

    server_config = HypercornConfig()
    server_config.bind = [config.bind_address()]
    server_config.loglevel = config.LOG_LEVEL if config.LOG_LEVEL != "TRACE" else "DEBUG"

    log_info("Authorization server listening", component="main", bind=config.bind_address())
    await serve(app, server_config)


def main() -> None:
    """Configure logging, validate configuration and run until interrupted."""
    try:
        config = get_config()
    except ValueError as e:
        setup_python_logging()
        log_error("Invalid configuration", component="main", error=e)
        sys.exit(1)

    setup_python_logging(config.LOG_LEVEL, use_colors=config.LOG_COLORS)
    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        log_info("Shutting down", component="main")


if __name__ == "__main__":
    main()
