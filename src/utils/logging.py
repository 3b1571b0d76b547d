"""
Structured logging for commands and change trigger runs.

Every record carries the correlation id of the request or activity write
being processed, and phone numbers are masked before they reach the logs.
"""

import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

EMAIL_PATTERN = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)
PHONE_PATTERN = re.compile(r'\+?\d[\d\s().-]{7,}\d')
BEARER_PATTERN = re.compile(r'(?i)bearer\s+[A-Za-z0-9._-]+')


def generate_correlation_id() -> str:
    return f"cmd_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """
    Tag every record logged inside the block with ``correlation_id``.

    Change trigger runs pass the activity id; HTTP commands pass the
    incoming correlation header or get a generated id.
    """
    token = _correlation_id_var.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


def mask_phone_number(phone_number: Optional[str]) -> Optional[str]:
    """Keep the leading three characters and last four digits of a phone number."""
    if not LoggingConfig.LOG_MASK_SENSITIVE or not phone_number:
        return phone_number

    if len(phone_number) > 7:
        return f"{phone_number[:3]}{'*' * (len(phone_number) - 7)}{phone_number[-4:]}"
    return phone_number


def mask_sensitive_data(text: str) -> str:
    """Redact emails, phone numbers and bearer tokens in free text."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text

    text = EMAIL_PATTERN.sub('[REDACTED_EMAIL]', text)
    text = PHONE_PATTERN.sub(lambda m: mask_phone_number(re.sub(r'[\s().-]', '', m.group())), text)
    return BEARER_PATTERN.sub('Bearer [REDACTED]', text)


def sanitize_comment(text: str, max_length: int = 500) -> Optional[str]:
    """Addendum comment as it may appear in logs, or None when comments are not logged."""
    if not LoggingConfig.LOG_MESSAGE_CONTENT or not text:
        return None

    if len(text) > max_length:
        text = text[:max_length] + "..."
    return mask_sensitive_data(text)


class StructuredLogger:
    """Logger wrapper that turns keyword arguments into structured fields."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _get_extra(self, **kwargs: Any) -> Dict[str, Any]:
        extra = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id

        extra.update(kwargs)
        return extra

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._get_extra(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._get_extra(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._get_extra(**kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, extra=self._get_extra(**kwargs), exc_info=exc_info)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Log how long the block took, with a warning above the slow threshold."""
    logger = logger or get_structured_logger(__name__)
    start_time = time.perf_counter()

    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.debug(f"Completed {operation_name}", operation=operation_name, elapsed_ms=elapsed_ms, **context)

        if elapsed_ms > LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                f"Slow operation: {operation_name}",
                operation=operation_name,
                elapsed_ms=elapsed_ms,
                threshold_ms=LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS,
                **context
            )
