"""Tests for logging configuration."""

import logging

import colorlog
import pytest

from stayer_keeper.helpers.logging import get_logger


class TestGetLogger:
    """Tests for get_logger function."""

    def test_same_name_returns_same_instance(self) -> None:
        """Test that loggers are cached per name."""
        logger1 = get_logger("keeper_same")
        logger2 = get_logger("keeper_same", log_level="ERROR")

        assert logger1 is logger2

    @pytest.mark.parametrize(
        ("name", "level"),
        [("keeper_debug", "DEBUG"), ("keeper_warning", "WARNING"), ("keeper_error", "ERROR")],
    )
    def test_explicit_level(self, name: str, level: str) -> None:
        """Test that an explicit level is applied."""
        assert get_logger(name, log_level=level).level == getattr(logging, level)

    def test_level_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that LOG_LEVEL sets the default level."""
        monkeypatch.setenv("LOG_LEVEL", "warning")

        assert get_logger("keeper_env_level").level == logging.WARNING

    def test_default_level_is_info(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the INFO default when LOG_LEVEL is unset."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        assert get_logger("keeper_default_level").level == logging.INFO

    def test_invalid_level_raises(self) -> None:
        """Test that invalid log level raises ValueError."""
        with pytest.raises(ValueError, match="Invalid log level"):
            get_logger("keeper_invalid", log_level="LOUD")

    def test_invalid_handler_raises(self) -> None:
        """Test that invalid handler raises ValueError."""
        with pytest.raises(ValueError, match="Invalid handler"):
            get_logger("keeper_invalid_handler", log_handler="syslog")

    def test_color_uses_colorlog_formatter(self) -> None:
        """Test that colour output installs a colorlog formatter."""
        logger = get_logger("keeper_color", log_color=True)

        assert isinstance(logger.handlers[-1].formatter, colorlog.ColoredFormatter)

    def test_color_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that LOG_COLOR=true enables colour."""
        monkeypatch.setenv("LOG_COLOR", "true")
        logger = get_logger("keeper_env_color")

        assert isinstance(logger.handlers[-1].formatter, colorlog.ColoredFormatter)

    def test_plain_formatter_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that colour is off unless requested."""
        monkeypatch.delenv("LOG_COLOR", raising=False)
        logger = get_logger("keeper_plain")

        formatter = logger.handlers[-1].formatter
        assert not isinstance(formatter, colorlog.ColoredFormatter)
        assert formatter is not None
        assert formatter._fmt == "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def test_records_reach_caplog(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that keeper loggers propagate so records can be captured."""
        logger = get_logger("keeper_caplog", log_level="DEBUG")

        with caplog.at_level(logging.DEBUG, logger="keeper_caplog"):
            logger.debug("Debug message")
            logger.error("Error message %s", 42)

        messages = [record.getMessage() for record in caplog.records]
        assert "Debug message" in messages
        assert "Error message 42" in messages
