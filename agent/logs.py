"""File and console logging setup shared by the loop, providers and engine."""

from __future__ import annotations

import logging
import os

_FORMAT = "%(asctime)s %(levelname)s %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def build_file_logger(name: str, log_dir: str, filename: str) -> logging.Logger:
    """Return a logger writing to ``log_dir/filename``, reusing an existing handler."""
    os.makedirs(log_dir, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    log_path = os.path.abspath(os.path.join(log_dir, filename))
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_path:
            return logger

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def configure_console(level: str = "INFO") -> None:
    """Attach a console handler to the root logger (used by run_web.py)."""
    root = logging.getLogger()
    if any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
           for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
