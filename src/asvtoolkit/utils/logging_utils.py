"""Logging setup for the asv commands and stage timing for the pipeline."""

import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

BRIEF_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logger(
    name: str = "asvtoolkit",
    log_file: Optional[str] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Configure the package logger for a command line run.

    Module loggers (``asvtoolkit.dada.dada`` etc.) propagate here. At DEBUG
    level the module name is included so per-round denoising messages can be
    traced to their stage.

    Args:
        name: Logger name
        log_file: Optional log file; always written at DEBUG level
        level: Console level
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.handlers.clear()

    fmt = DEBUG_FORMAT if level <= logging.DEBUG else BRIEF_FORMAT
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(fmt))
    logger.addHandler(console)

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(DEBUG_FORMAT))
        logger.addHandler(file_handler)

    return logger


@contextmanager
def log_stage(logger: logging.Logger, stage: str) -> Iterator[None]:
    """Log the start and wall-clock duration of a pipeline stage."""
    logger.info(f"[{stage}] started")
    start = time.perf_counter()
    yield
    logger.info(f"[{stage}] finished in {time.perf_counter() - start:.1f}s")
