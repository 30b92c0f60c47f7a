"""Logging utilities for the event monitor.

Every monitor module logs through ``logging.getLogger(__name__)``; this module
provides the one entrypoint that configures handlers for the whole process.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

_DEFAULT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
_RESERVED_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Format log records as one-line JSON objects.

    Values passed through ``extra=`` (e.g. ``event_name``, ``origin``) are
    emitted as top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS or key.startswith("_"):
                continue
            payload[key] = value

        if record.exc_info is not None:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name."""
    return logging.getLogger(name)


def setup_logging(config: BaseModel | Mapping[str, Any] | None = None) -> None:
    """Configure root logging handlers and formatter.

    Existing root handlers are removed and closed first, so calling this again
    replaces the previous setup.

    Args:
        config: ``LoggingConfig`` model or a mapping with ``level``,
            ``format``, ``file_path`` and ``json_format`` keys.
    """
    if isinstance(config, BaseModel):
        conf = config.model_dump()
    else:
        conf = dict(config or {})

    level = _parse_level(conf.get("level", "INFO"))
    text_format = str(conf.get("format") or _DEFAULT_FORMAT)
    file_path = conf.get("file_path")
    json_format = bool(conf.get("json_format", False))

    root_logger = logging.getLogger()

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(level)

    formatter: logging.Formatter
    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(text_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if isinstance(file_path, str) and file_path:
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level

    parsed_level = logging.getLevelName(level.upper())
    if isinstance(parsed_level, int):
        return parsed_level

    return logging.INFO
