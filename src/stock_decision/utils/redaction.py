"""Log redaction for credential-like fields."""

import logging
import re
from typing import Any

REDACTED = "[REDACTED]"

_SENSITIVE_PARTS = ("apikey", "api_key", "token", "secret", "password", "key")

# key=value / key: value fragments inside free-form messages
_INLINE_SECRET_RE = re.compile(
    r"(?i)\b([\w-]*(?:api[_-]?key|token|secret|password)[\w-]*)(\s*[=:]\s*)([^\s&,;\"']+)"
)


def is_sensitive_key(name: str) -> bool:
    """True if a field name looks like it carries a credential."""
    lowered = str(name).lower()
    return any(part in lowered for part in _SENSITIVE_PARTS)


def redact(value: Any) -> Any:
    """
    Return a copy of value with credential-like fields replaced.

    Recurses through dicts, lists and tuples. Strings are scrubbed of
    inline key=value secrets.
    """
    if isinstance(value, dict):
        return {
            k: (REDACTED if is_sensitive_key(k) else redact(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v) for v in value]
    if isinstance(value, tuple):
        return tuple(redact(v) for v in value)
    if isinstance(value, str):
        return _INLINE_SECRET_RE.sub(rf"\1\2{REDACTED}", value)
    return value


class RedactingFilter(logging.Filter):
    """Logging filter that scrubs secrets from messages and arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, dict):
            record.args = redact(record.args)
        elif isinstance(record.args, tuple):
            record.args = redact(record.args)
        return True


def install_redaction(logger: logging.Logger | None = None) -> RedactingFilter:
    """Attach a RedactingFilter to every handler of logger (root by default)."""
    target = logger or logging.getLogger()
    redacting = RedactingFilter()
    for handler in target.handlers:
        handler.addFilter(redacting)
    return redacting
