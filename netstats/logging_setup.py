"""Logging configuration for netstats."""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(logs_dir: Path, error_log_name: str = "error.log", verbose: bool = False) -> logging.Logger:
    """Configure root logging with rotating file, error file and console handlers."""

    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / "netstats.log"
    error_path = logs_dir / error_log_name

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    formatter = logging.Formatter(fmt=FORMAT, datefmt=DATEFMT)

    rotating = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
    if not any(Path(h.baseFilename) == log_path.resolve() for h in rotating):
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not any(Path(h.baseFilename) == error_path.resolve() for h in rotating):
        error_handler = logging.handlers.RotatingFileHandler(
            error_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout for h in logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def debug_log_path(logs_dir: Path, host: str) -> Path:
    return logs_dir / f"debug_{host.replace('.', '-')}.log"


def debug_logger_name(key: str) -> str:
    """Logger name for one poller key such as ``10.0.0.1/ifstats``."""

    return "netstats.debug." + key.replace(".", "-").replace("/", ".")


def open_debug_logger(logs_dir: Path, host: str, key: str) -> logging.Logger:
    """Return a non-propagating logger writing raw replies for one poller.

    Each poller gets its own logger and handler; pollers on the same host
    append to the same ``debug_<host>.log`` file. Handlers left over from an
    earlier open are closed first.
    """

    logger = logging.getLogger(debug_logger_name(key))
    close_debug_logger(logger)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(debug_log_path(logs_dir, host), encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt="%(asctime)s %(message)s", datefmt=DATEFMT))
    logger.addHandler(handler)
    return logger


def close_debug_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
