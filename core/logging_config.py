"""
Logging setup for the dashboard sync client.

Records can carry sync context (snapshot URL, fetch token, HTTP status,
connection attempt, retry delay and so on) in a ``sync_context`` dict.
The JSON formatter lifts those keys into the record itself and the
console formatter prints them as ``key=value`` after the message, so a
reconnect storm or a stale fetch can be followed in either output.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

CONTEXT_ATTR = "sync_context"

# Chatty libraries under the push and fetch paths
QUIET_LOGGERS = ("websocket", "websockets", "aiohttp", "urllib3", "asyncio")

LOG_FILE = "dashboard_sync.log"
ERROR_LOG_FILE = "errors.log"

_configured = False


def _component(logger_name: str) -> str:
    # realtime.transport -> transport
    return logger_name.rsplit(".", 1)[-1]


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, CONTEXT_ATTR, None) or {}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with sync context as top-level keys"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "component": _component(record.name),
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        for key, value in _context(record).items():
            entry.setdefault(key, value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Short colored lines for a terminal; never mutates the record"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[92m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[95m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{self.COLORS.get(record.levelname, '')}{record.levelname}{self.RESET}"
        line = f"[{clock}] [{level}] [{_component(record.name)}] {record.getMessage()}"

        context = _context(record)
        if context:
            line += "  " + " ".join(f"{key}={value}" for key, value in context.items())

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter,
                      max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Configure the root logger once per process.

    Args:
        config: Overrides for the environment defaults. Keys: log_level,
            log_dir, enable_file_logging, enable_console_logging, json
            (structured output), max_log_size_mb, backup_count.
    """
    global _configured

    settings = {
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_dir": os.getenv("LOG_DIR", "./logs"),
        "enable_file_logging": _env_flag("ENABLE_FILE_LOGGING"),
        "enable_console_logging": _env_flag("ENABLE_CONSOLE_LOGGING"),
        "json": os.getenv("LOG_FORMAT", "console").lower() == "json",
        "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
        "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
    }
    settings.update(config or {})

    level = logging.getLevelName(str(settings["log_level"]).upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    if settings["enable_console_logging"]:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(StructuredFormatter() if settings["json"] else ColoredConsoleFormatter())
        root.addHandler(console)

    log_dir = Path(settings["log_dir"])
    if settings["enable_file_logging"]:
        log_dir.mkdir(parents=True, exist_ok=True)
        # Files always get JSON so they can be grepped by token or url
        max_bytes = int(settings["max_log_size_mb"]) * 1024 * 1024
        for name, file_level in ((LOG_FILE, level), (ERROR_LOG_FILE, logging.ERROR)):
            root.addHandler(_rotating_handler(log_dir / name, file_level, StructuredFormatter(),
                                              max_bytes, int(settings["backup_count"])))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    log_sync_event(logging.getLogger(__name__), logging.DEBUG, "Logging configured",
                   level=logging.getLevelName(level), json=settings["json"],
                   log_dir=str(log_dir) if settings["enable_file_logging"] else None)


def get_logger(name: str) -> logging.Logger:
    """Return a logger, configuring logging from the environment on first use"""
    if not _configured:
        setup_logging()
    return logging.getLogger(name)


def log_sync_event(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log a message with sync context (url, token, attempt, delay, ...)"""
    logger.log(level, message, extra={CONTEXT_ATTR: context})


def log_fetch(logger: logging.Logger, url: str, status_code: Optional[int],
              duration_ms: float, error: Optional[str] = None, **context: Any) -> None:
    """
    Log one snapshot GET.

    Successful fetches are logged at INFO, failed ones at WARNING with the
    failure reason in ``error``.
    """
    status = status_code if status_code is not None else "no response"
    message = f"Snapshot GET {url} -> {status} in {duration_ms:.0f}ms"
    if error:
        message += f": {error}"
        context["error"] = error
    log_sync_event(logger, logging.WARNING if error else logging.INFO, message,
                   url=url, status_code=status_code, duration_ms=round(duration_ms, 1), **context)


def log_error_with_context(logger: logging.Logger, error: Exception,
                           operation: str, **context: Any) -> None:
    """Log an unexpected error with its type, traceback and sync context"""
    logger.error(f"Error in {operation}: {error}",
                 exc_info=(type(error), error, error.__traceback__),
                 extra={CONTEXT_ATTR: {"operation": operation,
                                       "error_type": type(error).__name__,
                                       **context}})
