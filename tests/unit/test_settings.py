"""Unit tests for settings and logging configuration."""

import logging
from typing import Any

import pytest
from pydantic import ValidationError

from courier.observability import logging as courier_logging
from courier.settings.app import CourierSettings


class TestCourierSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self) -> None:
        """Test the built-in defaults."""
        settings = CourierSettings(_env_file=None)

        assert settings.retry_limit == 2
        assert settings.max_redirects == 10
        assert settings.timeout_seconds is None
        assert settings.decompress is True
        assert settings.user_agent.startswith("courier/")

    def test_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that COURIER_ variables override defaults."""
        monkeypatch.setenv("COURIER_MAX_REDIRECTS", "3")
        monkeypatch.setenv("COURIER_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("COURIER_LOG_JSON", "false")

        settings = CourierSettings(_env_file=None)

        assert settings.max_redirects == 3
        assert settings.timeout_seconds == 2.5
        assert settings.log_json is False

    def test_out_of_range(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that invalid values are rejected."""
        monkeypatch.setenv("COURIER_RETRY_LIMIT", "-1")

        with pytest.raises(ValidationError):
            CourierSettings(_env_file=None)


class TestConfigureLoggingFromSettings:
    """Tests for logging configuration from settings."""

    @pytest.mark.parametrize(
        ("log_level", "expected"),
        [
            ("debug", logging.DEBUG),
            ("WARNING", logging.WARNING),
            ("bogus", logging.INFO),
        ],
    )
    def test_level_and_format(
        self,
        monkeypatch: pytest.MonkeyPatch,
        log_level: str,
        expected: int,
    ) -> None:
        """Test that level names and the JSON flag are forwarded."""
        calls: list[dict[str, Any]] = []
        monkeypatch.setattr(
            courier_logging,
            "configure_logging",
            lambda **kwargs: calls.append(kwargs),
        )
        settings = CourierSettings(_env_file=None, log_level=log_level, log_json=False)

        courier_logging.configure_logging_from_settings(settings)

        assert calls[0]["level"] == expected
        assert calls[0]["json_format"] is False
