"""Tests for logging setup."""

import logging

import pytest

from cctasks.logging_setup import _ConsoleNoiseFilter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    logging.captureWarnings(False)


def make_record(name, level):
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


class TestConsoleNoiseFilter:
    """Test suite for the stderr filter."""

    def test_own_loggers_pass(self):
        """Test that cctasks records pass at any level."""
        f = _ConsoleNoiseFilter()
        assert f.filter(make_record("cctasks", logging.WARNING))
        assert f.filter(make_record("cctasks.storage", logging.INFO))

    def test_third_party_only_errors(self):
        """Test that other loggers only pass at ERROR and above."""
        f = _ConsoleNoiseFilter()
        assert not f.filter(make_record("asyncio", logging.WARNING))
        assert not f.filter(make_record("cctasksish", logging.WARNING))
        assert f.filter(make_record("asyncio", logging.ERROR))


class TestSetupLogging:
    """Test suite for setup_logging."""

    def test_writes_log_file(self, tmp_path, restore_root_logger):
        """Test that records reach the log file in the given directory."""
        log_file = setup_logging(tmp_path / "logs")
        logging.getLogger("cctasks.test").debug("hello from test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file == tmp_path / "logs" / "cctasks.log"
        assert "hello from test" in log_file.read_text(encoding="utf-8")

    def test_replaces_handlers(self, tmp_path, restore_root_logger):
        """Test that calling twice does not duplicate handlers."""
        setup_logging(tmp_path)
        setup_logging(tmp_path)
        assert len(logging.getLogger().handlers) == 2

    def test_console_level(self, tmp_path, restore_root_logger, capsys):
        """Test that the console handler respects its level."""
        setup_logging(tmp_path, console_level=logging.ERROR)
        logging.getLogger("cctasks.test").warning("quiet warning")
        logging.getLogger("cctasks.test").error("loud error")
        err = capsys.readouterr().err
        assert "loud error" in err
        assert "quiet warning" not in err
