"""Tests for log redaction."""

import io
import logging

import pytest

from stock_decision.utils.redaction import (
    REDACTED,
    RedactingFilter,
    install_redaction,
    is_sensitive_key,
    redact,
)


class TestIsSensitiveKey:
    """Tests for is_sensitive_key."""

    @pytest.mark.parametrize("name", ["apiKey", "API_KEY", "access_token", "client_secret", "Password"])
    def test_sensitive(self, name):
        assert is_sensitive_key(name) is True

    @pytest.mark.parametrize("name", ["symbol", "price", "sector"])
    def test_not_sensitive(self, name):
        assert is_sensitive_key(name) is False


class TestRedact:
    """Tests for redact."""

    def test_nested_structures(self):
        payload = {
            "symbol": "AAPL",
            "auth": {"token": "abc", "user": "me"},
            "history": [{"apiKey": "xyz", "close": 1.0}],
        }
        assert redact(payload) == {
            "symbol": "AAPL",
            "auth": {"token": REDACTED, "user": "me"},
            "history": [{"apiKey": REDACTED, "close": 1.0}],
        }

    def test_input_not_modified(self):
        payload = {"token": "abc"}
        redact(payload)
        assert payload == {"token": "abc"}

    def test_inline_secrets(self):
        assert redact("GET /quote?apikey=abc123&symbol=AAPL") == f"GET /quote?apikey={REDACTED}&symbol=AAPL"
        assert redact("token: s3cr3t") == f"token: {REDACTED}"

    def test_tuple_and_scalars(self):
        assert redact(("password=hunter2", 5)) == (f"password={REDACTED}", 5)
        assert redact(None) is None
        assert redact(3.5) == 3.5


class TestRedactingFilter:
    """Tests for the logging filter."""

    def test_filter_scrubs_message_and_args(self):
        record = logging.LogRecord(
            "test", logging.WARNING, __file__, 1, "request %s failed", ("api_key=abc",), None
        )
        assert RedactingFilter().filter(record) is True
        assert record.getMessage() == f"request api_key={REDACTED} failed"

    def test_install_on_handlers(self):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        logger = logging.getLogger("stock_decision.tests.redaction")
        logger.addHandler(handler)
        logger.propagate = False
        try:
            install_redaction(logger)
            logger.warning("provider failed with secret=topsecret")
        finally:
            logger.removeHandler(handler)
        assert "topsecret" not in stream.getvalue()
        assert REDACTED in stream.getvalue()
