"""Logging configuration for cctasks.

The terminal UI owns the screen, so console output is limited to warnings
while the log file keeps everything.
"""

import logging
import sys
from pathlib import Path
from typing import Union


class _ConsoleNoiseFilter(logging.Filter):
    """Let cctasks warnings through to stderr, third-party loggers only on ERROR."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "cctasks" or record.name.startswith("cctasks."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    log_dir: Union[str, Path],
    file_level: int = logging.DEBUG,
    console_level: int = logging.WARNING,
) -> Path:
    """Configure root logging with a file handler and a quiet console handler.

    Call this once, before the first log record is emitted.

    Args:
        log_dir: Directory for cctasks.log (created if missing)
        file_level: Level for the file handler
        console_level: Level for the stderr handler

    Returns:
        Path of the log file
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "cctasks.log"

    root = logging.getLogger()
    root.setLevel(min(file_level, console_level))

    # Remove any pre-existing handlers to avoid duplicates.
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    return log_file
