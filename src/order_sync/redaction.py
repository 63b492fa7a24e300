"""Scrub credentials and customer contact details from log lines and error text."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "[REDACTED]"

# Values under these keys never reach a log line.
_SENSITIVE_KEY_RE = re.compile(
    r"(authorization|cookie|password|secret|token|bearer|api[_-]?key|phone|e-?mail|address)",
    re.IGNORECASE,
)

_TEXT_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9\-._~+/]+=*"), r"\1 " + REDACTED),
    (
        re.compile(
            r"(?i)\b(authorization|access[_-]?token|refresh[_-]?token|token|secret|"
            r"password|api[_-]?key)\s*[:=]\s*[^\s,;]+"
        ),
        r"\1=" + REDACTED,
    ),
    # Customer contact details echoed back in server error messages.
    (re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+"), REDACTED),
    (re.compile(r"(?<![\w.])(?:\+\d{2,3}[ .]?|0)[1-9](?:[ .-]?\d{2}){4}(?![\w.])"), REDACTED),
)


def sanitize_text(text: str) -> str:
    """Redact tokens, passwords, e-mail addresses and phone numbers in text."""
    for pattern, replacement in _TEXT_RULES:
        text = pattern.sub(replacement, text)
    return text


def is_sensitive_key(key: object) -> bool:
    return _SENSITIVE_KEY_RE.search(str(key)) is not None


def sanitize_for_logging(value: Any) -> Any:
    """Recursively redact sensitive values in nested structures."""
    if isinstance(value, Mapping):
        return {
            key: REDACTED if is_sensitive_key(key) else sanitize_for_logging(child)
            for key, child in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_for_logging(item) for item in value)
    if isinstance(value, str):
        return sanitize_text(value)
    return value
