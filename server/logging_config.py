"""Centralized logging configuration for the preflight server."""

import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from config.defaults import DEBUG_LOG_PATH

# Log format constants
SIMPLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
)

# Environment variable names
LOG_LEVEL_ENV = "LOG_LEVEL"

# Default values
DEFAULT_LOG_LEVEL = "INFO"

# Logger that receives the per-workspace debug log
PREFLIGHT_LOGGER = "preflight"

_debug_handlers: dict[str, logging.FileHandler] = {}


def setup_logging(level: Optional[str] = None) -> None:
    """Configure logging for the entire application.

    Args:
        level: Log level override. If not provided, uses LOG_LEVEL env var or INFO.
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    # Use simple format for INFO+, detailed format with line numbers for DEBUG
    fmt = DETAILED_FORMAT if log_level == logging.DEBUG else SIMPLE_FORMAT

    logging.basicConfig(
        level=log_level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )

    # Quiet noisy third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)


def attach_debug_log(cwd: str) -> Path:
    """Write DEBUG records of the preflight logger to the workspace debug log.

    Safe to call repeatedly; one handler is kept per log file.

    Args:
        cwd: Workspace root.

    Returns:
        Path of the debug log file.
    """
    path = Path(cwd) / DEBUG_LOG_PATH
    key = str(path.resolve())
    if key in _debug_handlers:
        return path

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    preflight_logger = logging.getLogger(PREFLIGHT_LOGGER)
    preflight_logger.addHandler(handler)
    preflight_logger.setLevel(logging.DEBUG)
    _debug_handlers[key] = handler
    return path


def detach_debug_logs() -> None:
    """Remove every debug log handler added by attach_debug_log."""
    preflight_logger = logging.getLogger(PREFLIGHT_LOGGER)
    for handler in _debug_handlers.values():
        preflight_logger.removeHandler(handler)
        handler.close()
    _debug_handlers.clear()
    preflight_logger.setLevel(logging.NOTSET)


@contextmanager
def log_timing(
    logger: logging.Logger, operation: str, level: int = logging.DEBUG
) -> Generator[None, None, None]:
    """Context manager for timing operations.

    Args:
        logger: Logger instance to use.
        operation: Name of the operation being timed.
        level: Log level for the timing message (default: DEBUG).

    Example:
        with log_timing(logger, "Preflight check"):
            verdicts = await gate.check(tool_calls)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.log(level, "%s completed in %.1fms", operation, duration_ms)
