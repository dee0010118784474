import json
import logging
import re
from typing import Any, Optional

import homogenaize.config as config

DEFAULT_FORMAT = (
    "%(asctime)s [%(levelname)s] [%(filename)s:%(lineno)d - %(funcName)s] %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

REDACTED = "***REDACTED***"
_SECRET_PATTERN = re.compile(r"(sk-[a-zA-Z0-9_-]{20,}|AI[a-zA-Z0-9_-]{35,})")
_SECRET_KEY_PATTERN = re.compile(
    r"(^|[_-])(api[_-]?key|key|token|secret|password|authorization)$", re.IGNORECASE
)

logger = logging.getLogger("homogenaize")
logger.addHandler(logging.NullHandler())

# Shortcut aliases
debug = logger.debug
info = logger.info
warning = logger.warning
error = logger.error
exception = logger.exception


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logger
    return logger.getChild(name)


def sanitize(data: Any) -> Any:
    """Mask API keys and secret-looking fields before they reach a log line."""
    if isinstance(data, str):
        return _SECRET_PATTERN.sub(REDACTED, data)
    if isinstance(data, dict):
        return {
            k: REDACTED
            if _SECRET_KEY_PATTERN.search(str(k))
            else sanitize(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [sanitize(v) for v in data]
    return data


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = sanitize(record.getMessage())
        record.args = None
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
) -> logging.Logger:
    """Attach a single handler to the package logger.

    Nothing is configured at import time; applications opt in here. Level and
    format default to HOMOGENAIZE_LOG_LEVEL / HOMOGENAIZE_LOG_FORMAT.
    """
    level_name = (level or config.LOGGING_LEVEL or "WARNING").upper()
    if level_name == "VERBOSE":
        level_name = "DEBUG"
    fmt = (fmt or config.LOG_FORMAT or "pretty").lower()

    handler = handler or logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(RedactingFilter())

    for existing in list(logger.handlers):
        if not isinstance(existing, logging.NullHandler):
            logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level_name, logging.WARNING))
    return logger
