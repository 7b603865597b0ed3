"""Privacy-safe logging configuration for Dispatchinator.

By default, sensitive data (UUIDs, phone numbers) is redacted.
Set LOG_SENSITIVE=true to enable full logging for debugging.

Two logger flavours are handed out:
- get_logger(): a plain ``logging.Logger`` for printf-style collaborators
  (repository, transport clients).
- get_structured_logger(): a ``StructuredLogger`` taking key/value fields,
  used by the router and the middleware stack.
"""

import logging
import os
import re
from typing import Any, Dict, MutableMapping, Tuple

import colorlog

# Keyword arguments understood by logging.Logger itself; everything else
# passed to a StructuredLogger call is treated as a field.
_LOGGER_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def anonymize_uuid(uuid: str) -> str:
    """Anonymize UUID to first 4 characters.

    Args:
        uuid: Full UUID string

    Returns:
        First 4 characters followed by "..." (e.g., "a3f2...")
    """
    if not uuid:
        return "none"
    return f"{uuid[:4]}..."


def anonymize_phone(phone: str) -> str:
    """Anonymize phone number to last 4 digits.

    Args:
        phone: Full phone number

    Returns:
        "***" followed by last 4 digits (e.g., "***1234")
    """
    if not phone:
        return "none"
    digits = re.sub(r'\D', '', phone)
    if len(digits) >= 4:
        return f"***{digits[-4:]}"
    return "***"


class PrivacyFilter(logging.Filter):
    """Logging filter that redacts sensitive data unless LOG_SENSITIVE=true.

    Redacts UUIDs and phone numbers found in the final log message,
    including the ``key=value`` suffix written by StructuredLogger.
    """

    UUID_PATTERN = re.compile(r'[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}')
    PHONE_PATTERN = re.compile(r'\+[0-9]{10,15}')

    def __init__(self, sensitive_logging: bool = False):
        super().__init__()
        self.sensitive_logging = sensitive_logging

    def filter(self, record: logging.LogRecord) -> bool:
        if self.sensitive_logging:
            return True

        if isinstance(record.msg, str):
            msg = self.UUID_PATTERN.sub(lambda m: anonymize_uuid(m.group(0)), record.msg)
            msg = self.PHONE_PATTERN.sub(lambda m: anonymize_phone(m.group(0)), msg)
            record.msg = msg

        return True


class StructuredLogger(logging.LoggerAdapter):
    """Key/value logger used by the dispatch core.

    Usage:
        log = get_structured_logger(__name__)
        log.warning("Slow command execution", prefix="/slow", duration_s=2.1)

    Fields end up appended to the message as ``key=value`` pairs and are
    available to handlers as ``record.fields``.
    """

    def __init__(self, logger: logging.Logger, fields: Dict[str, Any] = None):
        super().__init__(logger, dict(fields or {}))

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        fields = dict(self.extra)
        for key in [k for k in kwargs if k not in _LOGGER_KWARGS]:
            fields[key] = kwargs.pop(key)

        extra = dict(kwargs.get("extra") or {})
        extra["fields"] = fields
        kwargs["extra"] = extra

        if fields:
            pairs = " ".join(f"{key}={value}" for key, value in fields.items())
            msg = f"{msg} {pairs}"
        return msg, kwargs

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Return a child logger that always carries the given fields."""
        merged = dict(self.extra)
        merged.update(fields)
        return StructuredLogger(self.logger, merged)


def setup_logging(
    level: str = None,
    sensitive: bool = None,
    suppress_noisy: bool = True
) -> None:
    """Configure logging with colorlog and privacy filters.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Default from LOG_LEVEL env or INFO.
        sensitive: Enable sensitive data logging. Default from LOG_SENSITIVE env or False.
        suppress_noisy: Suppress noisy library logs (urllib3, etc). Default True.
    """
    if level is None:
        level = os.getenv('LOG_LEVEL', 'INFO').upper()
    if sensitive is None:
        sensitive = os.getenv('LOG_SENSITIVE', 'false').lower() in ('true', '1', 'yes')

    handler = colorlog.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(
        '%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    handler.addFilter(PrivacyFilter(sensitive_logging=sensitive))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    if suppress_noisy:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)
        logging.getLogger('apscheduler').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured: level={level}, sensitive={sensitive}")


def get_logger(name: str) -> logging.Logger:
    """Get a plain (printf-style) logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def get_structured_logger(name: str, **fields: Any) -> StructuredLogger:
    """Get a key/value logger with the given name and bound fields."""
    return StructuredLogger(logging.getLogger(name), fields)
