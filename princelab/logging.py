from __future__ import annotations

"""Centralised Loguru configuration.

Use setup_logger() at program start. Idempotent – repeated calls are no-ops
unless *force* is given.

User keys are WhatsApp phone numbers, so every sink runs through a patcher
that masks them down to their last four digits when ``LOG_MASK_USER_KEYS`` is
on (the default).
"""
import re
import sys
from pathlib import Path
from typing import Literal

from loguru import logger

from princelab.settings import settings

_INITIALISED = False

_PHONE_RE = re.compile(r"\+?\d{8,15}")


def mask_user_keys(text: str) -> str:
    """Replace phone-number-like runs with ``***`` plus their last four digits."""
    return _PHONE_RE.sub(lambda m: "***" + m.group(0)[-4:], text)


def _mask_record(record) -> None:
    record["message"] = mask_user_keys(record["message"])


def _keep_record(record) -> None:
    pass


def setup_logger(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = None,
    *,
    log_dir: str | Path | None = None,
    force: bool = False,
) -> Path:
    """Configure Loguru sinks once per process and return the log directory.

    If *level* is *None* the value of ``settings.LOG_LEVEL`` is used, and
    *log_dir* defaults to ``settings.LOG_DIR``.
    """

    global _INITIALISED
    directory = Path(log_dir if log_dir is not None else settings.LOG_DIR)
    if _INITIALISED and not force:
        return directory

    if level is None:
        level = settings.LOG_LEVEL.upper()  # type: ignore[assignment]

    directory.mkdir(parents=True, exist_ok=True)

    logger.remove()  # remove default stderr sink
    # configure(patcher=None) would leave a previous patcher in place
    logger.configure(patcher=_mask_record if settings.LOG_MASK_USER_KEYS else _keep_record)

    rotation, retention = settings.LOG_ROTATION, settings.LOG_RETENTION
    logger.add(directory / "app.log", level="INFO", rotation=rotation, retention=retention)
    logger.add(directory / "debug.log", level="DEBUG", rotation=rotation, retention=retention)

    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> {message}",
        colorize=True,
    )

    logger.info("Logger initialised (level: {}, dir: {})", level, directory)

    _INITIALISED = True
    return directory
