"""Logging setup with run-id correlation.

Every job run (ingest, summarize, keeper) gets a short run id stored in a
context variable. A logging filter copies it onto each record, so concurrent
tasks spawned by the run log under the same id.

Usage:
    >>> from observability.logging import setup_logging, start_run
    >>> setup_logging(config)
    >>> run_id = start_run("keeper")
    >>> logger.info("Keeper started")  # [keeper-3f9a1c] in the output
"""

import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any

from config import Config

LOG_FILE_NAME = "quickbrew.log"

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")

# Attributes every LogRecord carries; anything else was passed via extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "run_id"}

_NOISY_LOGGERS = ("aiohttp", "asyncio", "httpx", "httpcore", "openai", "urllib3")


def start_run(job: str) -> str:
    """Assign a fresh run id for a job and return it."""
    run_id = f"{job}-{uuid.uuid4().hex[:6]}"
    run_id_var.set(run_id)
    return run_id


def clear_run() -> None:
    run_id_var.set("-")


class RunIdFilter(logging.Filter):
    """Stamp the current run id onto log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Warnings and errors include their source location; fields passed through
    `extra=` are copied into the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", "-"),
            "message": record.getMessage(),
        }
        if record.levelno >= logging.WARNING:
            data["source"] = f"{record.filename}:{record.lineno}"
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            try:
                json.dumps(value)
                data[key] = value
            except (TypeError, ValueError):
                data[key] = str(value)

        return json.dumps(data, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """TIMESTAMP [LEVEL] [run_id] logger: message"""

    def __init__(self, include_date: bool = False):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(run_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S",
        )


def _file_handler(config: Config) -> logging.Handler:
    log_file = config.log_dir / LOG_FILE_NAME
    if config.log_max_bytes > 0:
        return RotatingFileHandler(
            log_file,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    return TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )


def setup_logging(config: Config, verbose: bool = False) -> bool:
    """Configure console and rotating-file logging on the root logger.

    Falls back to console-only output when the log directory is not writable.

    Args:
        config: Logging settings (level, format, directory, rotation)
        verbose: Force DEBUG on the console

    Returns:
        True if file logging is active
    """
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    run_filter = RunIdFilter()
    as_json = config.log_format == "json"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(JsonFormatter() if as_json else TextFormatter())
    console.addFilter(run_filter)
    root.addHandler(console)

    file_enabled = False
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        handler = _file_handler(config)
    except OSError as e:
        print(
            f"Warning: cannot write to log directory '{config.log_dir}': {e}. "
            "Logging to console only.",
            file=sys.stderr,
        )
    else:
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(JsonFormatter() if as_json else TextFormatter(include_date=True))
        handler.addFilter(run_filter)
        root.addHandler(handler)
        file_enabled = True

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return file_enabled
