"""
Logging utilities for safe log output.

Provides a custom LogRecord factory that sanitizes log arguments. Values that
flow into log calls (session ids, stream ids, provider error strings) could
contain newlines that forge log entries (CWE-117), and session tokens must
never reach a log sink. Registered secrets are masked in every record.

Install once at startup via install_safe_logging().
"""

import logging

_ORIGINAL_FACTORY = logging.getLogRecordFactory()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
SECRET_MASK = "***"
# Shorter values are too likely to collide with ordinary text
MIN_SECRET_LENGTH = 4

_secrets: set[str] = set()


def register_secret(value: str) -> None:
    """Mask ``value`` wherever it appears in a log argument."""
    if value and len(value) >= MIN_SECRET_LENGTH:
        _secrets.add(value)


def clear_secrets() -> None:
    _secrets.clear()


def _mask_secrets(text: str) -> str:
    for secret in _secrets:
        if secret in text:
            text = text.replace(secret, SECRET_MASK)
    return text


def _escape_line_breaks(text: str) -> str:
    return text.replace('\r\n', '\\r\\n').replace('\r', '\\r').replace('\n', '\\n')


def _sanitize_value(value):
    """Escape line breaks and mask registered secrets in a log argument."""
    if isinstance(value, str):
        return _escape_line_breaks(_mask_secrets(value))
    if value is None or isinstance(value, (int, float)):
        return value
    # Exceptions and other objects are rendered with str() by %s
    text = str(value)
    sanitized = _escape_line_breaks(_mask_secrets(text))
    return sanitized if sanitized != text else value


def _safe_record_factory(*args, **kwargs):
    """LogRecord factory that sanitizes args to prevent log injection and secret leaks."""
    record = _ORIGINAL_FACTORY(*args, **kwargs)
    if record.args:
        if isinstance(record.args, dict):
            record.args = {k: _sanitize_value(v) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_sanitize_value(a) for a in record.args)
    if isinstance(record.msg, str) and _secrets:
        # Pre-formatted messages (f-strings) still get secrets masked
        record.msg = _mask_secrets(record.msg)
    return record


def install_safe_logging():
    """
    Install a global LogRecord factory that sanitizes all log arguments.

    Call once during application startup, before any logging occurs.
    """
    logging.setLogRecordFactory(_safe_record_factory)


def configure_logging(level: str = "INFO") -> None:
    """Install the safe record factory and a root stream handler."""
    install_safe_logging()
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
