"""Logging for the Storefront domain.

The standard library owns the handlers (console, plus rotating files outside
tests); structlog renders key/value events on top of it. Production and
staging emit JSON lines, everything else a colored console with rich
tracebacks.

Settings come from the environment:

    LOG_LEVEL     overrides the per-environment default level
    LOG_DIR       directory for storefront.log / storefront_error.log
    LOG_TO_FILE   "0" disables the file handlers (off by default under test)
"""

import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

_DEFAULT_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

_STRUCTURED_ENVIRONMENTS = {"production", "staging"}

_QUIET_LOGGERS = ("protean", "urllib3", "asyncio", "httpx")

_MAX_LOG_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class LogSettings:
    environment: str
    level: str
    directory: Path
    to_file: bool

    @property
    def structured(self) -> bool:
        return self.environment in _STRUCTURED_ENVIRONMENTS

    @classmethod
    def from_env(cls):
        environment = (
            os.getenv("ENV") or os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development"
        ).lower()
        to_file_default = "0" if environment == "test" else "1"
        return cls(
            environment=environment,
            level=os.getenv("LOG_LEVEL", _DEFAULT_LEVELS.get(environment, "INFO")).upper(),
            directory=Path(os.getenv("LOG_DIR", "logs")),
            to_file=os.getenv("LOG_TO_FILE", to_file_default) not in ("0", "false", "no"),
        )


def _rotating(path: Path, level) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_MAX_LOG_BYTES,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _handlers(settings: LogSettings) -> list[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(settings.level)
    handlers = [console]

    if settings.to_file:
        settings.directory.mkdir(parents=True, exist_ok=True)
        handlers.append(_rotating(settings.directory / "storefront.log", settings.level))
        handlers.append(_rotating(settings.directory / "storefront_error.log", logging.ERROR))

    return handlers


def setup_stdlib_logging(settings: LogSettings) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.level)
    root_logger.handlers = _handlers(settings)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _processors(settings: LogSettings) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.structured:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=True, max_frames=2),
            )
        )
    return processors


def setup_structlog(settings: LogSettings) -> None:
    structlog.configure(
        processors=_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(settings: LogSettings | None = None) -> None:
    """Configure stdlib handlers and structlog from ``settings`` (or the environment)."""
    settings = settings or LogSettings.from_env()
    setup_stdlib_logging(settings)
    setup_structlog(settings)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def add_context(**kwargs: Any) -> None:
    """Bind key/value pairs to every log event emitted by this request or thread."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**kwargs: Any):
    """Bind key/value pairs for the duration of a block, restoring the previous values after."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
