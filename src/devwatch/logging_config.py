"""
Logging setup for devwatch.

All loggers live under the "devwatch" namespace so a single call to
setup_logging() configures every module. Console output goes through
rich's RichHandler; the optional log file gets plain timestamped lines.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "devwatch"
DEFAULT_LOG_DIR = Path.home() / ".devwatch" / "logs"

FILE_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the devwatch namespace (devwatch.<name>)."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelName(level.upper())


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
    console_stream=None,
) -> logging.Logger:
    """Configure the devwatch root logger.

    Existing handlers are removed first so repeated calls don't duplicate
    output.

    Args:
        level: Logging level (int or name)
        log_file: Optional file to append plain-text log lines to
        console: Whether to log to the console via rich
        console_stream: Optional stream for the rich console (tests)
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    if console:
        rich_console = Console(file=console_stream, stderr=console_stream is None)
        handler = RichHandler(
            console=rich_console,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            log_time_format="%H:%M:%S",
        )
        logger.addHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, FILE_DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def setup_daemon_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    use_default_file: bool = False,
) -> logging.Logger:
    """Configure logging for the long-running monitor.

    Returns the devwatch.monitor logger.
    """
    if log_file is None and use_default_file:
        log_file = DEFAULT_LOG_DIR / "monitor.log"
    setup_logging(level=level, log_file=log_file, console=True)
    return get_logger("monitor")


def setup_cli_logging() -> logging.Logger:
    """Quiet logging for one-shot CLI commands (warnings and up)."""
    setup_logging(level=logging.WARNING, console=True)
    return get_logger("cli")
