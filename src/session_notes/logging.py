"""Logging configuration for session-notes.

Console output goes to stderr so it never mixes with command output on
stdout. A log file is only written when a log directory is configured.
"""

import logging
import sys
from pathlib import Path


def setup_logging(
    name: str,
    log_dir: Path | None = None,
    level: int = logging.WARNING,
    console: bool = True,
) -> logging.Logger:
    """Configure logging for a session-notes component.

    Handlers are attached to the package logger (``session_notes``) so every
    module logger obtained through get_logger() shares them.

    Args:
        name: Component name (used for the log filename)
        log_dir: Directory for log files; no file handler when None
        level: Logging level for all handlers
        console: Whether to also log to stderr

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("session_notes")
    logger.setLevel(level)

    # Avoid adding duplicate handlers if already configured
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{name}.log", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter("session-notes: %(levelname)s: %(message)s"))
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a session-notes component.

    Args:
        name: Logger name (will be prefixed with 'session_notes.')

    Returns:
        Logger instance
    """
    return logging.getLogger(f"session_notes.{name}")
