"""Logging configuration for the language server process."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_FILE = Path.home() / ".completionls" / "logs" / "server.log"

CONSOLE_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(process)d %(threadName)s %(name)s %(levelname)s %(message)s"


def setup_logging(debug: bool = False, log_file: Path | None = None) -> None:
    """
    Route the root logger to stderr and a rotating log file.

    Args:
        debug: Log DEBUG records to the console as well
        log_file: Log file path, ``DEFAULT_LOG_FILE`` when omitted
    """
    level = logging.DEBUG if debug else logging.INFO
    log_file = log_file or DEFAULT_LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    # stdout carries the JSON-RPC stream
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    # Completion requests run on worker threads
    file_handler = RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root.addHandler(file_handler)

    logging.getLogger(__name__).info(
        "Logging to %s (level=%s)", log_file, logging.getLevelName(level)
    )
