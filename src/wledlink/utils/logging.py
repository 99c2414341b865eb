from __future__ import annotations

import logging
import os
from typing import Literal

import coloredlogs  # type: ignore[import]

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"

# Libraries that are chatty at INFO/DEBUG about every socket and request
NOISY_LOGGERS = ("websockets", "httpx", "httpcore", "zeroconf")


def suppress_logger(name: str, level: int = logging.WARNING) -> None:
    logging.getLogger(name).setLevel(level)


def setup_logging(level: LogLevel | None = None, verbose: bool = False) -> None:
    resolved = (level or os.environ.get("LOGLEVEL", "INFO")).upper()
    if verbose:
        resolved = "DEBUG"

    coloredlogs.install(
        level=resolved,
        fmt=DEFAULT_FORMAT,
        datefmt=DEFAULT_DATE_FORMAT,
    )

    if resolved != "DEBUG":
        for name in NOISY_LOGGERS:
            suppress_logger(name)
