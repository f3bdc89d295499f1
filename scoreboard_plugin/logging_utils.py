from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

LOGGER_NAME = "FlyScore"
LOG_FILENAME = "fly-score.log"
LOG_MAX_BYTES = 512 * 1024
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# script_log level constants exposed by obspython.
OBS_LOG_ERROR = 100
OBS_LOG_WARNING = 200
OBS_LOG_INFO = 300
OBS_LOG_DEBUG = 400


def obs_level_for(levelno: int) -> int:
    if levelno >= logging.ERROR:
        return OBS_LOG_ERROR
    if levelno >= logging.WARNING:
        return OBS_LOG_WARNING
    if levelno >= logging.INFO:
        return OBS_LOG_INFO
    return OBS_LOG_DEBUG


class HostLogHandler(logging.Handler):
    """Forward records to the host's script log, or to the root logger outside the host."""

    def __init__(self, sink: Optional[Callable[[int, str], None]] = None) -> None:
        super().__init__()
        self._sink = sink

    def set_sink(self, sink: Optional[Callable[[int, str], None]]) -> None:
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            message = record.getMessage()
        if self._sink is not None:
            try:
                self._sink(obs_level_for(record.levelno), message)
                return
            except Exception:
                self._sink = None
        logging.getLogger().log(record.levelno, message)


def build_rotating_file_handler(
    log_dir: Path,
    filename: str = LOG_FILENAME,
    *,
    retention: int,
    max_bytes: int = LOG_MAX_BYTES,
    formatter: Optional[logging.Formatter] = None,
) -> logging.Handler:
    """Construct a rotating file handler for the plugin log."""
    retention = max(1, retention)
    backup_count = max(0, retention - 1)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / filename,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter or logging.Formatter(LOG_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler
