"""
Loguru setup for keepwatching.

Besides the built-in levels three custom ones are used:

- PROGRAM: startup, bootstrap and one-off maintenance such as data migrations
- DATABASE: every status write, with the table and the affected row count
- STATUS: every recorded status transition (entity, from, to, reason)
"""

import os
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

from keepwatching.settings.manager import settings_manager
from keepwatching.settings.models import LoggingModel
from keepwatching.utils import data_dir_path

# name: (severity, colour, icon)
LOG_LEVELS = {
    "PROGRAM": (20, "cc6600", "🤖"),
    "DATABASE": (5, "d834eb", "🛢️"),
    "STATUS": (10, "92a1cf", "📺"),
}

LOG_FORMAT = (
    "<fg #818589>{time:YY-MM-DD} {time:HH:mm:ss}</fg #818589> | "
    "<level>{level.icon}</level> <level>{level: <9}</level> | "
    "<fg #e7e7e7>{module}</fg #e7e7e7>.<fg #e7e7e7>{function}</fg #e7e7e7> - <level>{message}</level>"
)

LOG_FILE_PREFIX = "keepwatching-"
CLEAN_INTERVAL_SECONDS = 3600

LAST_LOGS_CLEANED: datetime | None = None


def logs_dir() -> Path:
    return data_dir_path / "logs"


def _register_levels():
    for name, (no, color, icon) in LOG_LEVELS.items():
        try:
            logger.level(name, no=no, color=f"<fg #{color}>", icon=icon)
        except (TypeError, ValueError):
            # Re-running setup keeps the existing severity
            logger.level(name, color=f"<fg #{color}>", icon=icon)


def _file_handler(log_settings: LoggingModel, level: str) -> dict:
    os.makedirs(logs_dir(), exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M")

    return {
        "sink": logs_dir() / f"{LOG_FILE_PREFIX}{timestamp}.log",
        "level": level,
        "format": LOG_FORMAT,
        "rotation": f"{log_settings.rotation_mb} MB" if log_settings.rotation_mb > 0 else None,
        "retention": f"{log_settings.retention_hours} hours",
        "compression": (
            log_settings.compression if log_settings.compression != "disabled" else None
        ),
        "backtrace": False,
        "diagnose": True,
        "enqueue": True,
    }


def setup_logger(level: str):
    """Register the custom levels and install the stderr and (optional) file sinks."""

    _register_levels()
    level = (level or "INFO").upper()
    log_settings = settings_manager.settings.logging

    handlers = [
        {
            "sink": sys.stderr,
            "level": level,
            "format": LOG_FORMAT,
            "backtrace": False,
            "diagnose": False,
            "enqueue": True,
        }
    ]
    if log_settings.enabled:
        handlers.append(_file_handler(log_settings, level))

    logger.configure(handlers=handlers)


def _expired_logs(retention_hours: int) -> list[Path]:
    """Log files past retention, never including the newest one."""

    log_files = sorted(
        logs_dir().glob(f"{LOG_FILE_PREFIX}*.log*"), key=lambda p: p.stat().st_mtime
    )
    now = datetime.now()
    return [
        p
        for p in log_files[:-1]
        if (now - datetime.fromtimestamp(p.stat().st_mtime)).total_seconds() / 3600
        > retention_hours
    ]


def log_cleaner():
    """Remove log files older than the retention period, at most once an hour."""

    global LAST_LOGS_CLEANED

    log_settings = settings_manager.settings.logging
    if not log_settings.enabled or not logs_dir().exists():
        return
    if (
        LAST_LOGS_CLEANED
        and (datetime.now() - LAST_LOGS_CLEANED).total_seconds() < CLEAN_INTERVAL_SECONDS
    ):
        return

    retention_hours = max(0, int(log_settings.retention_hours))
    try:
        expired = _expired_logs(retention_hours)
        for log_file in expired:
            log_file.unlink()
    except OSError as e:
        logger.error(f"Failed to clean old logs: {e}")
        return

    if expired:
        LAST_LOGS_CLEANED = datetime.now()
        logger.log("PROGRAM", f"Removed {len(expired)} logs older than {retention_hours} hours")


setup_logger(settings_manager.settings.log_level)
