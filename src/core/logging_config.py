"""Loguru sink configuration shared by the CLI and scripts."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Replace the default loguru handler.

    Args:
        level: Minimum level written to stderr
        log_file: Optional path for a rotating file sink (always DEBUG)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<level>{level: <8}</level> | <cyan>{name}</cyan> - <level>{message}</level>",
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
