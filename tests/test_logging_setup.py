"""Tests for scriptcut.logging_setup."""

import logging
import tempfile
from pathlib import Path

import pytest
from rich.logging import RichHandler

from scriptcut.logging_setup import setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    mcp_level = logging.getLogger("mcp").level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers = handlers
    root.setLevel(level)
    logging.getLogger("mcp").setLevel(mcp_level)


class TestSetupLogging:
    def test_rich_handler_on_stderr(self, restore_logging):
        setup_logging("DEBUG")
        handlers = [h for h in logging.getLogger().handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert handlers[0].console.stderr
        assert logging.getLogger().level == logging.DEBUG

    def test_quiets_mcp_logger(self, restore_logging):
        setup_logging("INFO")
        assert logging.getLogger("mcp").level == logging.WARNING

    def test_log_file(self, restore_logging):
        with tempfile.TemporaryDirectory() as d:
            log_path = Path(d, "logs", "scriptcut.log")
            setup_logging("INFO", str(log_path))
            logging.getLogger("scriptcut.test").info("hello file")
            for h in logging.getLogger().handlers:
                h.flush()
            assert "hello file" in log_path.read_text(encoding="utf-8")
            for h in logging.getLogger().handlers:
                if isinstance(h, logging.FileHandler):
                    h.close()
