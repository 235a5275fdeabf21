# dockship/audit_log.py
"""Console and per-run log file sinks.

One file named ``deploy_YYYYMMDD_HHMMSS.log`` is created per invocation. It is
append-only and not read back by anything; it exists for the operator.
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set

from loguru import logger

from dockship.config import LOG_FILE_PATTERN

LOG_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss}] {message}"
REDACTED = "****"

_secrets: Set[str] = set()
_handler_ids: List[int] = []


def register_secret(value: Optional[str]) -> None:
    """Mask ``value`` in every log record from now on."""
    if value:
        _secrets.add(value)


def clear_secrets() -> None:
    _secrets.clear()


def redact(text: str) -> str:
    # longest first so a secret that contains another is fully masked
    for secret in sorted(_secrets, key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text


def _redact_record(record) -> None:
    if _secrets:
        record["message"] = redact(record["message"])


def setup_logging(log_dir: Path, verbose: bool = False) -> Path:
    """Install the console and file sinks and return the log file path.

    The file is created immediately so it exists even when the run aborts
    on its first check.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / datetime.now().strftime(LOG_FILE_PATTERN)
    log_path.touch()

    logger.remove()
    _handler_ids.clear()
    logger.configure(patcher=_redact_record)
    _handler_ids.append(
        logger.add(
            sys.stderr,
            format=LOG_FORMAT,
            level="DEBUG" if verbose else "INFO",
            colorize=False,
        )
    )
    _handler_ids.append(
        logger.add(
            str(log_path),
            format=LOG_FORMAT,
            level="DEBUG",
            mode="a",
            encoding="utf-8",
        )
    )
    return log_path


def shutdown_logging() -> None:
    """Flush and close the sinks installed by setup_logging."""
    for handler_id in _handler_ids:
        try:
            logger.remove(handler_id)
        except ValueError:
            pass
    _handler_ids.clear()
    clear_secrets()
