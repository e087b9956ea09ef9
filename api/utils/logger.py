"""
Service logging: one named logger, console output with optional ANSI colors, an optional
rotating file, and a request id carried through a ContextVar into every record.
"""

from __future__ import annotations

import copy
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

LOGGER_NAME = "genii"

REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="-")

_ANSI = {
    "reset": "\x1b[0m",
    "dim": "\x1b[2m",
    "blue": "\x1b[34m",
    "cyan": "\x1b[36m",
    "green": "\x1b[32m",
    "yellow": "\x1b[33m",
    "red": "\x1b[31m",
    "magenta": "\x1b[35m",
    "white": "\x1b[37m",
}

_LEVEL_COLOR = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "magenta",
}


def _paint(text: Any, color: str) -> str:
    return f"{_ANSI[color]}{text}{_ANSI['reset']}"


class RequestIdFilter(logging.Filter):
    """Stamps the current request id (or `-`) onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.request_id = REQUEST_ID.get("-")
        return True


class ColorFormatter(logging.Formatter):
    """Console formatter: blue timestamp, colored level, dimmed logger name and request id."""

    def __init__(self, *args, enable_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.enable_color = enable_color

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        stamp = super().formatTime(record, datefmt)
        return _paint(stamp, "blue") if self.enable_color else stamp

    def format(self, record: logging.LogRecord) -> str:
        if not self.enable_color:
            return super().format(record)
        painted = copy.copy(record)
        painted.levelname = _paint(record.levelname, _LEVEL_COLOR.get(record.levelname, "white"))
        painted.name = _paint(record.name, "dim")
        painted.request_id = _paint(getattr(record, "request_id", "-"), "dim")
        return super().format(painted)


def _should_enable_color(stream) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        # closed stream
        return False


def _parse_level(level: Optional[str]) -> int:
    return logging.getLevelNamesMapping().get((level or "INFO").upper(), logging.INFO)


LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s request_id=%(request_id)s src=%(filename)s:%(lineno)d %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)


def configure_logging(
    *,
    level: Optional[str] = None,
    log_dir: str | Path | None = None,
    log_file: str = "genii.log",
) -> logging.Logger:
    """
    Configure the service logger: console always, rotating file when a log dir is given
    (argument or LOG_DIR). Idempotent: the first call wins, later calls return the logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if getattr(logger, "_configured", False):
        return logger

    numeric_level = _parse_level(level or os.getenv("LOG_LEVEL"))
    logger.setLevel(numeric_level)
    logger.propagate = False

    _attach(
        logger,
        logging.StreamHandler(sys.stdout),
        numeric_level,
        ColorFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT, enable_color=_should_enable_color(sys.stdout)),
    )

    log_dir = log_dir or os.getenv("LOG_DIR")
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            filename=str(Path(log_dir) / log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=10,
            encoding="utf-8",
        )
        _attach(logger, rotating, numeric_level, logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    logger._configured = True  # type: ignore[attr-defined]
    return logger


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id (generated when absent) to the current context."""
    rid = request_id or uuid.uuid4().hex
    REQUEST_ID.set(rid)
    return rid


def clear_request_id() -> None:
    REQUEST_ID.set("-")


def current_request_id() -> str:
    return REQUEST_ID.get("-")


def format_fields(**fields: Any) -> str:
    """Render key=value pairs in a stable order, skipping None values."""
    return " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)


class log_request:
    """
    Time a named operation and log its outcome:
      with log_request(logger, "process_recommendations"):
          ...
    Exceptions are logged and then propagate.
    """

    def __init__(self, logger: logging.Logger, name: str):
        self.logger = logger
        self.name = name
        self._started = 0.0

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.debug("start %s", self.name)
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None:
            self.logger.info("%s ok duration_ms=%s", self.name, self.elapsed_ms)
        else:
            self.logger.error("%s failed duration_ms=%s error=%s", self.name, self.elapsed_ms, exc)
        return False
