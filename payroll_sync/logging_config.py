"""
Structured Logging Configuration

Provides:
- Client IDs attached to every record emitted while serving a connection
- JSON formatting for rotating file logs
- Human-readable console output
"""

import contextvars
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union


# Connection currently being served (set by the websocket endpoint)
client_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "client_id", default=None
)


class ConnectionContext:
    """Context manager binding a client id to log records."""

    def __init__(self, client_id: str):
        self.client_id = client_id
        self._token = None

    def __enter__(self):
        self._token = client_id_var.set(self.client_id)
        return self

    def __exit__(self, *args):
        client_id_var.reset(self._token)


CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for the rotating file log."""

    def __init__(self, extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        entry = dict(self.extra_fields)
        entry["time"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
            timespec="milliseconds"
        )
        entry["level"] = record.levelname
        entry["logger"] = record.name
        entry["message"] = record.getMessage()

        client_id = client_id_var.get()
        if client_id:
            entry["client_id"] = client_id

        if record.exc_info:
            entry["error"] = repr(record.exc_info[1])
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class StructuredFormatter(logging.Formatter):
    """Terminal output: one line per record, tagged with the short client id."""

    def __init__(self):
        super().__init__(CONSOLE_FORMAT, datefmt="%H:%M:%S")

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        client_id = client_id_var.get()
        if client_id:
            line = f"{line} [client {client_id[:8]}]"
        return line


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    log_file: str = "payroll_sync.log",
    console_output: bool = True,
    max_bytes: int = 20 * 1024 * 1024,  # 20MB
    backup_count: int = 5,
    extra_fields: Optional[Dict[str, Any]] = None,
) -> logging.Logger:
    """
    Configure logging for the server process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating JSON logs (no file logging if None)
        log_file: Name of the log file
        console_output: Enable console output
        max_bytes: Max size of log file before rotation
        backup_count: Number of rotated files to keep
        extra_fields: Additional fields to include in every JSON record

    Returns:
        Configured root logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter(extra_fields=extra_fields))
        root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(console_handler)

    return root_logger
