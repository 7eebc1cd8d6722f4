"""Logging setup for the application."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "slm_app"
LOG_FILE_NAME = "slm_app.log"
FILE_HANDLER_NAME = "slm_app.file"
CONSOLE_HANDLER_NAME = "slm_app.console"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def level_from_name(name: str) -> int:
    return LEVELS.get(str(name).lower(), logging.INFO)


def shorten(payload: bytes, limit: int = 512) -> str:
    """Printable prefix of a raw message payload for error logs."""
    text = payload[:limit].decode("utf-8", errors="replace")
    if len(payload) > limit:
        text += f"... ({len(payload)} bytes)"
    return text


def setup_logging(log_dir: str = "logs", level: int = logging.INFO) -> logging.Logger:
    """
    Attach a rotating file log and a console log to the ``slm_app`` logger.

    Safe to call again: handlers are looked up by name and never added twice.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    existing = {h.get_name() for h in logger.handlers}

    if FILE_HANDLER_NAME not in existing:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path / LOG_FILE_NAME, maxBytes=500_000, backupCount=2)
        file_handler.set_name(FILE_HANDLER_NAME)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(threadName)s: %(message)s"))
        logger.addHandler(file_handler)

    if CONSOLE_HANDLER_NAME not in existing:
        console = logging.StreamHandler()
        console.set_name(CONSOLE_HANDLER_NAME)
        console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(console)

    return logger
