"""Unified logging configuration for the scheduler and its scripts.

Library modules only ever call ``logging.getLogger(__name__)``; entry
points call ``setup_logging`` once to attach handlers.

Usage:
    from swarm.logging_config import setup_logging, LogContext

    logger = setup_logging("swarm_scheduler", level="INFO", log_dir=Path("logs"))

    with LogContext(logger, logging.DEBUG):
        controller.tick()
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterable, Optional, Union

__all__ = [
    "COMPACT_FORMAT",
    "DEFAULT_FORMAT",
    "DETAILED_FORMAT",
    "STRUCTURED_FORMAT",
    "LogContext",
    "configure_third_party_loggers",
    "get_logger",
    "setup_logging",
]

DEFAULT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
COMPACT_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DETAILED_FORMAT = (
    "%(asctime)s [%(name)s] %(levelname)s %(filename)s:%(lineno)d: %(message)s"
)
STRUCTURED_FORMAT = (
    '{"time": "%(asctime)s", "logger": "%(name)s", '
    '"level": "%(levelname)s", "message": "%(message)s"}'
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_FORMATS = {
    "default": DEFAULT_FORMAT,
    "compact": COMPACT_FORMAT,
    "detailed": DETAILED_FORMAT,
    "structured": STRUCTURED_FORMAT,
}

# Packages that log at INFO on every HTTP call.
NOISY_PACKAGES = ("urllib3", "requests", "prometheus_client")


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(
    name: str,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    console: bool = True,
    propagate: bool = False,
    format_style: str = "default",
) -> logging.Logger:
    """Configure and return a named logger.

    Calling it again for the same name returns the same logger without
    stacking duplicate handlers.

    Args:
        name: Logger name (usually the script name)
        level: Level as int or name ("DEBUG", "INFO", ...)
        log_file: Explicit log file path
        log_dir: Directory for ``<name>.log`` when no log_file is given
        console: Attach a stderr handler
        propagate: Pass records to ancestor loggers
        format_style: One of default, compact, detailed, structured
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    logger.propagate = propagate

    formatter = logging.Formatter(_FORMATS.get(format_style, DEFAULT_FORMAT), datefmt=DATE_FORMAT)

    if console and not any(getattr(h, "_swarm_console", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        handler._swarm_console = True
        logger.addHandler(handler)

    if log_file is None and log_dir is not None:
        log_file = Path(log_dir) / f"{name}.log"

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        existing = {
            getattr(h, "baseFilename", None)
            for h in logger.handlers
            if isinstance(h, logging.FileHandler)
        }
        if os.path.abspath(log_path) not in existing:
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_third_party_loggers(
    quiet: bool = True,
    verbose_packages: Optional[Iterable[str]] = None,
) -> None:
    """Set chatty third-party loggers to WARNING unless listed as verbose."""
    if not quiet:
        return
    keep = set(verbose_packages or ())
    for package in NOISY_PACKAGES:
        if package in keep:
            continue
        logging.getLogger(package).setLevel(logging.WARNING)


class LogContext:
    """Temporarily change a logger's level."""

    def __init__(self, logger: logging.Logger, level: Union[int, str]):
        self.logger = logger
        self.level = _resolve_level(level)
        self._previous: Optional[int] = None

    def __enter__(self) -> logging.Logger:
        self._previous = self.logger.level
        self.logger.setLevel(self.level)
        return self.logger

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._previous is not None:
            self.logger.setLevel(self._previous)
        return False
