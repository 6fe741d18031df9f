"""Structured logging configuration."""

from __future__ import annotations

import logging
import sys

_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formats records as ``key=value`` pairs, including any `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                log_data[key] = value

        line = " ".join(f"{key}={value}" for key, value in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(level: str | int = "INFO", *, logger_name: str = "helpdesk_ai") -> logging.Logger:
    """Install the structured handler on the package logger once.

    Modules log through ``logging.getLogger(__name__)``; records propagate to
    this logger, so configuring it covers the whole package.
    """

    logger = logging.getLogger(logger_name)
    if not any(getattr(handler, "_helpdesk_handler", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        handler._helpdesk_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(level if isinstance(level, int) else level.upper())
    return logger
