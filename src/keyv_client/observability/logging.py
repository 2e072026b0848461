"""Structured logging for keyv applications.

keyv itself only emits structlog events. ``configure_logging`` is opt-in
(``KeyvSettings.setup_logging`` or a direct call) and installs a single
root handler named ``keyv``; handlers installed by the application are
left in place.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import structlog
from structlog.contextvars import merge_contextvars

if TYPE_CHECKING:
    from keyv_core.config.settings import KeyvSettings

HANDLER_NAME = "keyv"

# Driver loggers that are chatty at DEBUG/INFO, by backend
DRIVER_LOGGERS: dict[str, tuple[str, ...]] = {
    "memory": (),
    "redis": ("redis",),
    "postgres": ("sqlalchemy.engine", "sqlalchemy.pool", "asyncpg"),
    "mysql": ("sqlalchemy.engine", "sqlalchemy.pool", "aiomysql"),
    "sqlite": ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite"),
    "mongodb": ("pymongo",),
}


def configure_logging(settings: KeyvSettings) -> None:
    """Render structlog and stdlib records as console text or JSON.

    Calling it again swaps the keyv handler rather than stacking a
    second one.
    """
    level = _resolve_level(settings.log_level)
    shared_processors: list[structlog.types.Processor] = [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_render(settings.log_format),
            ],
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    for existing in [h for h in root_logger.handlers if h.get_name() == HANDLER_NAME]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    quiet_driver_loggers(settings.backend, level)


def quiet_driver_loggers(backend: str, level: int) -> None:
    """Hold the backend's driver loggers (and asyncio) at WARNING or above."""
    for name in ("asyncio", *DRIVER_LOGGERS.get(backend, ())):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def _render(log_format: str) -> list[structlog.types.Processor]:
    """Final processors for the chosen format."""
    if log_format == "json":
        # sweep_failed and friends carry exc_info; JSON needs it as text
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def _resolve_level(level_name: str) -> int:
    """Convert a level name string to a logging level int."""
    return logging.getLevelNamesMapping().get(level_name.upper(), logging.INFO)
