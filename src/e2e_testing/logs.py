"""Logging setup for test sessions."""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "e2e-testing.log"


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Set up console and rotating file logging.

    Console output goes to stderr at the configured level; the log file is
    always written at DEBUG so poll attempts can be inspected after a run.

    Args:
        level: Log level name, defaults to LOG_LEVEL or INFO
        log_dir: Directory for the log file, defaults to LOG_DIR

    Returns:
        Logger instance for the package
    """
    log_level_str = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    log_dir = log_dir or os.environ.get("LOG_DIR", "/tmp/e2e-testing/logs")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        if getattr(handler, "_e2e_handler", False):
            root_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    console_handler._e2e_handler = True
    root_logger.addHandler(console_handler)

    try:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME), maxBytes=10 * 1024 * 1024, backupCount=5  # 10MB
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
            )
        )
        file_handler._e2e_handler = True
        root_logger.addHandler(file_handler)
    except OSError as e:
        root_logger.warning(f"Could not set up file logging in {log_dir}: {e}")

    return logging.getLogger("e2e_testing")
