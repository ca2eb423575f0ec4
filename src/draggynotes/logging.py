"""structlog setup shared by the service, the sync timer and uvicorn."""

import logging

import structlog

from draggynotes.config import Config

# Chatty third-party loggers, kept at WARNING unless debugging
QUIET_LOGGERS = ("httpx", "httpcore", "pymongo", "uvicorn.access")


def setup_logging(config: Config) -> None:
    level = logging.getLevelNamesMapping().get(config.log_level.upper(), logging.INFO)
    if config.debug:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(message)s")
    if not config.debug:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[structlog.types.Processor] = [
        # Picks up sync_pass and other values bound for the current task
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if config.log_format == "console" or config.debug:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
