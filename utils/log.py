"""Structured logging for LexiSync.

Library code asks for a logger with ``get_logger(component)`` and passes
structured fields as keyword arguments::

    logger.info("Word saved", word_id=word_id)

Nothing is printed until ``setup_logging`` is called at the process boundary
(``main.py``); until then the ``lexisync`` logger only has a NullHandler.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

LOGGER_NAME = "lexisync"
_LOG_KWARGS = {"exc_info", "stack_info", "stacklevel", "extra"}

logging.getLogger(LOGGER_NAME).addHandler(logging.NullHandler())


class FieldLogger(logging.LoggerAdapter):
    """Adapter that moves unknown keyword arguments into ``record.fields``."""

    def process(self, msg, kwargs):
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in _LOG_KWARGS}
        extra = dict(kwargs.get("extra") or {})
        extra["fields"] = {**(self.extra or {}), **extra.get("fields", {}), **fields}
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(component: str, **bound_fields) -> FieldLogger:
    return FieldLogger(logging.getLogger(f"{LOGGER_NAME}.{component}"), bound_fields)


class FieldsFormatter(logging.Formatter):
    """Append structured fields to the message, or emit one JSON object per line."""

    def __init__(self, json_format: bool = False):
        super().__init__("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        fields = getattr(record, "fields", None) or {}
        if self.json_format:
            payload = {
                "time": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                **fields,
            }
            if record.exc_info:
                payload["exc"] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)
        text = super().format(record)
        if fields:
            text += " " + " ".join(f"{key}={value!r}" for key, value in fields.items())
        return text


def setup_logging(level: str = "INFO", json_format: bool = False, handler: Optional[logging.Handler] = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in list(logger.handlers):
        if not isinstance(existing, logging.NullHandler):
            logger.removeHandler(existing)
    handler = handler or logging.StreamHandler()
    handler.setFormatter(FieldsFormatter(json_format=json_format))
    logger.addHandler(handler)
    return logger
