"""Logging setup: structlog for request logs, one shared formatter for everything.

Middleware logs through structlog; the domain services use plain
``logging.getLogger(__name__)``. Both end up on a single root handler whose
``ProcessorFormatter`` renders them the same way (JSON in production, console
in development), with the request id bound by the request-id middleware.
"""

import logging

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from gardennet.config import Settings

_HANDLER_NAME = "gardennet"

# Libraries that are chatty at INFO.
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "asyncio")


def _service_tagger(settings: Settings) -> Processor:
    def add_service(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", "garden-network")
        event_dict.setdefault("version", settings.app_version)
        return event_dict

    return add_service


def _build_formatter(settings: Settings, shared: list[Processor]) -> logging.Formatter:
    final: list[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if settings.log_format == "json":
        final += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        final.append(structlog.dev.ConsoleRenderer())
    return structlog.stdlib.ProcessorFormatter(foreign_pre_chain=shared, processors=final)


def setup_logging(settings: Settings) -> None:
    """Configure structlog and route stdlib loggers through the same renderer.

    Safe to call more than once (each app instance calls it): the handler it
    installs on the root logger is replaced, not duplicated.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _service_tagger(settings),
    ]

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(_build_formatter(settings, shared))

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.debug else logging.WARNING)
