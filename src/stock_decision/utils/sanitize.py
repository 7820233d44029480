"""Cleaning of free text returned by data providers."""

import re

# Tab, newline and carriage return are kept here and collapsed as whitespace below
_CONTROL_RE = re.compile(r"[\x00-\x08\x0e-\x1f\x7f-\x9f]")
_WHITESPACE_RE = re.compile(r"\s+")

ELLIPSIS = "..."


def sanitize_text(text: object, max_length: int = 500) -> str | None:
    """
    Clean a provider text field (company name, sector, industry, holder name).

    Control characters are dropped, line breaks and whitespace runs collapse
    to a single space, and text longer than max_length is cut with a
    trailing "...".

    Args:
        text: Raw value from the provider (may be None or a non-string)
        max_length: Maximum length before truncation

    Returns:
        Cleaned text, or None when nothing printable is left
    """
    if text is None:
        return None

    cleaned = _CONTROL_RE.sub("", str(text))
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    if not cleaned:
        return None

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip() + ELLIPSIS
    return cleaned
