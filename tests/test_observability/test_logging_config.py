"""Tests for logging setup."""

from __future__ import annotations

from collections.abc import Generator

import pytest

from duplex.logging_config import get_logger, preview, setup_logging


@pytest.fixture
def reset_logging() -> Generator[None, None, None]:
    yield
    setup_logging(level="WARNING", enable_file=False)


class TestSetupLogging:
    """Tests for setup_logging sinks per role."""

    def test_server_writes_log_and_error_files(self, tmp_path, reset_logging) -> None:
        """Test the server role adds a rotating log and an error-only log."""
        setup_logging(level="INFO", log_dir=tmp_path, role="server")
        logger = get_logger(__name__)

        logger.info("server started")
        logger.error("provider down")

        server_logs = list(tmp_path.glob("duplex_server_*.log"))
        error_logs = list(tmp_path.glob("duplex_errors_*.log"))
        assert len(server_logs) == 1
        assert len(error_logs) == 1
        assert "server started" in server_logs[0].read_text()
        assert "server started" not in error_logs[0].read_text()
        assert "provider down" in error_logs[0].read_text()

    def test_client_has_no_error_file(self, tmp_path, reset_logging) -> None:
        setup_logging(level="INFO", log_dir=tmp_path, role="client")

        get_logger(__name__).error("microphone busy")

        assert len(list(tmp_path.glob("duplex_client_*.log"))) == 1
        assert list(tmp_path.glob("duplex_errors_*.log")) == []

    def test_file_logging_disabled(self, tmp_path, reset_logging) -> None:
        """Test no files are created when file logging is off."""
        setup_logging(level="INFO", log_dir=tmp_path / "logs", enable_file=False)

        get_logger(__name__).info("console only")

        assert not (tmp_path / "logs").exists()


class TestPreview:
    """Tests for preview."""

    def test_short_text_kept(self) -> None:
        assert preview("  hello   there ") == "hello there"

    def test_long_text_truncated(self) -> None:
        assert preview("a" * 50, limit=10) == "aaaaaaaaaa..."
