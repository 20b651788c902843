"""Logging configuration using Loguru.

Two roles share one setup:
- server: the FastAPI backend, with detailed console lines, a rotating
  log file and an error-only file
- client: the voice console, with compact console lines that sit
  between conversation output, and an optional rotating log file

Transcripts and reply text are only ever logged at DEBUG level.
"""

import sys
from pathlib import Path
from typing import Literal

from loguru import logger

Role = Literal["server", "client"]

SERVER_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

CLIENT_CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> <level>{level: <7}</level> {message}"

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "logs",
    enable_file: bool = True,
    *,
    role: Role = "server",
) -> None:
    """Configure logging for the backend or the voice console.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        enable_file: Whether to enable file logging
        role: "server" or "client"; selects console format and file sinks
    """
    logger.remove()

    is_server = role == "server"
    logger.add(
        sys.stderr,
        format=SERVER_CONSOLE_FORMAT if is_server else CLIENT_CONSOLE_FORMAT,
        level=level,
        colorize=True,
        backtrace=is_server,
        diagnose=is_server,
    )

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / f"duplex_{role}_{{time:YYYY-MM-DD}}.log",
            format=FILE_FORMAT,
            level=level,
            rotation="100 MB" if is_server else "10 MB",
            retention="30 days" if is_server else "7 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )

        if is_server:
            logger.add(
                log_path / "duplex_errors_{time:YYYY-MM-DD}.log",
                format=FILE_FORMAT + "\n{exception}",
                level="ERROR",
                rotation="50 MB",
                retention="90 days",
                compression="gz",
                backtrace=True,
                diagnose=False,
            )

    logger.debug(f"Logging initialized for {role} at {level} level")


def get_logger(name: str) -> "logger":
    """Get a logger bound to a module name.

    Usage:
        logger: Any = get_logger(__name__)
    """
    return logger.bind(name=name)


def preview(text: str, limit: int = 40) -> str:
    """Shorten user or assistant text for DEBUG log lines."""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."
