"""
Process-wide logging for ProcureMed.

Console output is always on. A rotating log file is added when ``log_file`` is
set, and rotated files older than ``log_retention_days`` are purged at startup.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path

from procuremed.config import Settings, settings as default_settings

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

_configured = False


def configure_logging(settings: Settings | None = None) -> None:
    global _configured
    if _configured:
        return

    settings = settings or default_settings
    root = logging.getLogger()
    # Unknown level names fall back to INFO.
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(
            RotatingFileHandler(settings.log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)
        )
        purge_old_logs(settings.log_file, settings.log_retention_days)

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def purge_old_logs(log_file: str, retention_days: int) -> int:
    """Remove rotated copies of ``log_file`` older than ``retention_days``; the live file stays."""
    if retention_days <= 0:
        return 0

    log_path = Path(log_file).resolve()
    cutoff = (datetime.now() - timedelta(days=retention_days)).timestamp()
    removed = 0
    for rotated in log_path.parent.glob(f'{log_path.name}.*'):
        try:
            modified = rotated.stat().st_mtime
        except FileNotFoundError:
            continue
        if modified < cutoff:
            rotated.unlink(missing_ok=True)
            removed += 1
    return removed
