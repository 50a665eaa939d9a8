"""Entry point for running the FastAPI application."""

import logging
import sys

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from backend.src.api.main import create_app  # noqa: E402
from backend.src.services.config import get_config  # noqa: E402
from backend.src.services.log_config import configure_logging  # noqa: E402
from backend.src.services.shutdown import GracefulServer  # noqa: E402

logger = logging.getLogger(__name__)


def main() -> int:
    try:
        config = get_config()
    except ValueError as exc:
        configure_logging()
        logger.error("Invalid configuration: %s", exc)
        return 1

    configure_logging(config)
    app = create_app(config)

    server = GracefulServer(
        uvicorn.Config(app, host="0.0.0.0", port=config.port, log_config=None),
        grace_seconds=config.shutdown_timeout_seconds,
    )
    server.on_shutdown(app.state.registry.close_all)

    logger.info(
        "Starting server",
        extra={"port": config.port, "environment": config.environment},
    )
    server.run()
    server.cancel_watchdog()
    return 0


if __name__ == "__main__":
    sys.exit(main())
