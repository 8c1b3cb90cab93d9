"""Logging setup for guarded-shell.

Library modules log through ``logging.getLogger(__name__)`` and never install
handlers themselves. Applications (and the CLI) call :func:`configure_logging`
once to attach a handler to the ``guarded_shell`` logger.

Three output formats are available:

- ``rich``: colored console output on stderr (default)
- ``human``: plain ``time LEVEL logger: message`` lines
- ``json``: one JSON object per record, including ``extra=`` fields, for
  shipping audit events to a log pipeline

Example:
    >>> from guarded_shell.logging import configure_logging
    >>> configure_logging("INFO", format="json")
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, Literal

from rich.console import Console
from rich.logging import RichHandler

__all__ = ["JSONFormatter", "HumanFormatter", "LogFormat", "configure_logging", "get_logger"]

_ROOT_LOGGER = "guarded_shell"

LogFormat = Literal["rich", "human", "json"]

# Attributes every LogRecord has; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "asctime", "taskName"}
)


class JSONFormatter(logging.Formatter):
    """Format records as single-line JSON.

    Fields passed with ``extra=`` are copied to the top level, so audit events
    keep their structure. Records at ERROR and above carry their source
    location.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.levelno >= logging.ERROR:
            data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                data[key] = value

        return json.dumps(data, default=str)


class HumanFormatter(logging.Formatter):
    """Plain-text formatter for non-interactive output."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s")


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger under the ``guarded_shell`` namespace."""
    if not name:
        return logging.getLogger(_ROOT_LOGGER)
    if name.startswith(_ROOT_LOGGER):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


def configure_logging(
    level: int | str = logging.INFO,
    *,
    format: LogFormat = "rich",
    console: Console | None = None,
) -> logging.Logger:
    """Configure the package logger.

    Replaces any handler previously installed by this function, so it is
    safe to call more than once.

    Args:
        level: Log level for the ``guarded_shell`` logger.
        format: ``rich``, ``human`` or ``json``.
        console: Console for the rich handler. Defaults to a stderr console.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    for existing in list(logger.handlers):
        if getattr(existing, "_guarded_shell", False):
            logger.removeHandler(existing)

    handler: logging.Handler
    if format == "rich":
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    elif format == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(HumanFormatter())

    handler._guarded_shell = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
