"""Logging setup for the `arr` logger tree.

All runtime modules log through named children of ``arr`` (``arr.agent``,
``arr.modules``, ``arr.llm`` ...). ``setup_logging`` attaches one stderr
handler using the configured level and format (text or json). Subsequent
calls only adjust the level.
"""
from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.config.schemas.observability import LoggingConfig

logger = logging.getLogger("arr")

_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_handler: logging.Handler | None = None


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    global _handler
    level = _LEVEL_MAP.get(
        (config.level if config else "info").lower(), logging.INFO
    )
    logger.setLevel(level)
    if _handler is not None:
        _handler.setLevel(level)
        return logger
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if config is not None and config.format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    logger.addHandler(handler)
    _handler = handler
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    if name:
        return logger.getChild(name)
    return logger


__all__ = ["setup_logging", "get_logger"]
