"""Tests for the root logger setup."""
import logging

import pytest

from pollsync.logging_setup import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:

    def test_console_and_rotating_file(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "pollsync.log"
        setup_logging("debug", log_file=str(log_file))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert logging.getLogger("websockets").level == logging.WARNING

        logging.getLogger("pollsync.connection").info("Connected to %s", "ws://one")
        for handler in root.handlers:
            handler.flush()
        line = log_file.read_text().strip()
        assert "| INFO     | pollsync.connection:" in line
        assert line.endswith("Connected to ws://one")

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging("chatty")
        assert logging.getLogger().level == logging.INFO
