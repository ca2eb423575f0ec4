"""Entry point: `draggynotes` starts the local sync service and its HTTP API."""

import structlog

from draggynotes.app import App
from draggynotes.config import Config
from draggynotes.logging import setup_logging
from draggynotes.web.runner import run_server

logger = structlog.get_logger(__name__)


def main() -> None:
    config = Config()
    setup_logging(config)
    logger.info(
        "draggynotes_starting",
        api_base_url=config.api_base_url,
        storage_backend=config.storage_backend,
        auto_sync=config.auto_sync,
        sync_interval_seconds=config.sync_interval_seconds,
    )
    run_server(App(config), config)


if __name__ == "__main__":
    main()
