"""Tests for logging utilities."""

from __future__ import annotations

import logging

from authflow.log import enable_debug, get_logger, redact_sensitive_data, set_level


class TestRedaction:
    """Tests for redact_sensitive_data()."""

    def test_redacts_sensitive_keys(self) -> None:
        """Tokens, codes and state are hidden."""
        data = {
            "access_token": "at",
            "code": "c",
            "state": "s",
            "code_verifier": "v",
            "scope": "openid",
        }
        assert redact_sensitive_data(data) == {
            "access_token": "[REDACTED]",
            "code": "[REDACTED]",
            "state": "[REDACTED]",
            "code_verifier": "[REDACTED]",
            "scope": "openid",
        }

    def test_nested(self) -> None:
        """Nested dicts and lists are traversed."""
        data = {"outer": [{"Refresh_Token": "rt", "name": "n"}]}
        assert redact_sensitive_data(data) == {
            "outer": [{"Refresh_Token": "[REDACTED]", "name": "n"}]
        }

    def test_does_not_mutate(self) -> None:
        """The input is left untouched."""
        data = {"code": "c"}
        redact_sensitive_data(data)
        assert data == {"code": "c"}

    def test_max_depth(self) -> None:
        """Deep structures are cut off."""
        assert redact_sensitive_data({"a": {"b": 1}}, max_depth=1) == {"a": "[MAX_DEPTH]"}

    def test_scalars(self) -> None:
        """Non-container values pass through."""
        assert redact_sensitive_data("plain") == "plain"
        assert redact_sensitive_data(None) is None


class TestLevels:
    """Tests for level helpers."""

    def test_set_level(self) -> None:
        """Levels accept names and numbers."""
        logger = get_logger()
        original = logger.level
        try:
            set_level("info")
            assert logger.level == logging.INFO
            set_level(logging.ERROR)
            assert logger.level == logging.ERROR
            enable_debug()
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(original)

    def test_single_handler(self) -> None:
        """Repeated calls do not stack handlers."""
        assert get_logger() is get_logger()
        assert len(get_logger().handlers) == 1
