"""Secret-safe logging for crate-sync.

Keeps Discogs tokens and email addresses out of log output:
- Sensitive field redaction
- Authorization header / token pattern scrubbing in messages
- Rich console handler setup for the CLI
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Fields that should be redacted in logs
REDACT_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "authorization",
        "discogs_token",
        "access_token",
        "consumer_secret",
    }
)

PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
    "discogs_token": re.compile(r"(Discogs\s+token=)[^\s,'\"]+", re.I),
    "query_token": re.compile(r"([?&]token=)[^&\s'\"]+", re.I),
}


def redact_value(value: str, visible_chars: int = 4) -> str:
    """Redact a sensitive value, showing only first few characters.

    Args:
        value: Value to redact
        visible_chars: Number of characters to show

    Returns:
        Redacted string (e.g., "abcd***")
    """
    if len(value) <= visible_chars:
        return "***"
    return f"{value[:visible_chars]}***"


def redact_dict(
    data: Mapping[str, Any],
    redact_fields: frozenset[str] | None = None,
) -> dict[str, Any]:
    """Recursively redact sensitive fields in a mapping (e.g. request headers)."""
    if redact_fields is None:
        redact_fields = REDACT_FIELDS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()
        should_redact = key_lower in redact_fields or any(f in key_lower for f in redact_fields)

        if should_redact and isinstance(value, str):
            result[key] = redact_value(value)
        elif isinstance(value, Mapping):
            result[key] = redact_dict(value, redact_fields)
        elif isinstance(value, list):
            result[key] = [
                redact_dict(item, redact_fields) if isinstance(item, Mapping) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def sanitize_message(message: str) -> str:
    """Scrub tokens and email addresses from a log message."""
    result = PATTERNS["email"].sub("[EMAIL]", message)
    result = PATTERNS["discogs_token"].sub(r"\1***", result)
    result = PATTERNS["query_token"].sub(r"\1***", result)
    return result


class SafeLogFormatter(logging.Formatter):
    """Log formatter that scrubs secrets from the rendered message."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        sanitize_messages: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.sanitize_messages = sanitize_messages

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        message = super().formatMessage(record)
        if self.sanitize_messages:
            message = sanitize_message(message)
        return message


def configure_rich_logging(
    level: int = logging.WARNING,
    format_string: str = "%(message)s",
    redact_secrets: bool = True,
    show_time: bool = True,
    show_path: bool = False,
    console: Console | None = None,
) -> Console:
    """Install a Rich handler with secret scrubbing on the root logger.

    Returns:
        The Console the handler writes to (stderr by default)
    """
    console = console or Console(stderr=True)
    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(SafeLogFormatter(fmt=format_string, sanitize_messages=redact_secrets))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if isinstance(existing, RichHandler):
            root_logger.removeHandler(existing)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    return console


## Tests


def test_redact_value():
    assert redact_value("sk-secret-key-12345") == "sk-s***"
    assert redact_value("abc") == "***"


def test_redact_dict_headers():
    headers = {"Authorization": "Discogs token=abcdef123", "User-Agent": "crate-sync/0.1.0"}
    redacted = redact_dict(headers)
    assert redacted["Authorization"] == "Disc***"
    assert redacted["User-Agent"] == "crate-sync/0.1.0"


def test_sanitize_message_scrubs_tokens():
    msg = "GET /users/x?page=1&token=s3cr3t failed; header Discogs token=abcdef for me@example.com"
    sanitized = sanitize_message(msg)
    assert "s3cr3t" not in sanitized
    assert "abcdef" not in sanitized
    assert "[EMAIL]" in sanitized


def test_safe_log_formatter():
    formatter = SafeLogFormatter(fmt="%(message)s")
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Email: %s",
        args=("user@example.com",),
        exc_info=None,
    )
    formatted = formatter.format(record)
    assert "[EMAIL]" in formatted
    assert "user@example.com" not in formatted
