"""Logging helpers for scripts that run the Lambda code outside of Lambda."""

from __future__ import annotations

import logging
from typing import IO, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
HANDLER_ROOT = "backend.lambdas"


def get_logger(name: str, level: int = logging.INFO, *, stream: Optional[IO[str]] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(handler)

    # Lambda already attaches a root handler; avoid duplicate lines.
    logger.propagate = False
    return logger


def configure_cli_logging(verbose: bool = False, *, stream: Optional[IO[str]] = None) -> logging.Logger:
    """Route every handler module's records to stderr (or `stream`) for command line use."""
    return get_logger(HANDLER_ROOT, logging.DEBUG if verbose else logging.INFO, stream=stream)
