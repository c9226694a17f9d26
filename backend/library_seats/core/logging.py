"""
Structured logging configuration using structlog.
Outputs JSON in production, pretty-printed in development.

State changes happen on behalf of three kinds of caller: a gateway user
(actor_id bound by the request middleware), the violation detector
(sweep_id bound for the duration of a sweep) or the service itself
(startup, shutdown, the scheduler loop). add_actor tags every event with
which one it was.
"""

import logging
import sys
import structlog
from library_seats.core.config import get_settings

ACTOR_USER = "user"
ACTOR_DETECTOR = "detector"
ACTOR_SYSTEM = "system"

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


def add_actor(logger, method_name: str, event_dict: dict) -> dict:
    """Set `actor` from the bound context. Runs after merge_contextvars."""
    if "actor" in event_dict:
        return event_dict
    if "sweep_id" in event_dict:
        event_dict["actor"] = ACTOR_DETECTOR
    elif "actor_id" in event_dict:
        event_dict["actor"] = ACTOR_USER
    else:
        event_dict["actor"] = ACTOR_SYSTEM
    return event_dict


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        add_actor,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.ENVIRONMENT == "production":
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Records from stdlib loggers (uvicorn, alembic) get the same rendering
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
