"""Tests for logging configuration."""

import io
import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler

from dbzip.logging import configure_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_default_level_is_info(self) -> None:
        configure_logging(stream=io.StringIO())
        assert logging.getLogger().level == logging.INFO

    def test_verbose_is_debug(self) -> None:
        configure_logging(verbosity=1, stream=io.StringIO())
        assert logging.getLogger().level == logging.DEBUG

    def test_quiet_wins_over_debug(self) -> None:
        configure_logging(quiet=True, debug=True, stream=io.StringIO())
        assert logging.getLogger().level == logging.WARNING

    def test_rich_handler_installed(self) -> None:
        configure_logging(stream=io.StringIO())
        assert any(isinstance(h, RichHandler) for h in logging.getLogger().handlers)

    def test_log_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "dbzip.log"
        configure_logging(stream=io.StringIO(), log_file=log_file)
        logging.getLogger("dbzip.test").info("Backed up in 12 ms")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "Backed up in 12 ms" in log_file.read_text()

    def test_no_color_console(self) -> None:
        console = configure_logging(no_color=True, stream=io.StringIO())
        assert console.no_color
