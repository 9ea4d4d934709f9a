"""
Keystone — Logging Service
============================

What:  A logging façade that forwards every call to a console sink and to
       daily rotating file sinks, honouring a configured minimum severity.
How:   Sinks are independent stdlib handlers composed under one logger:

           LoggerService.info("...")
                │
                ▼
           logging.Logger("keystone")  (level = configured minimum)
                │ propagate
                ▼
           root logger
           ├── console     StreamHandler           human-readable line
           ├── app         DailyRotatingFileHandler  logs/app.<date>.log
           └── app-error   DailyRotatingFileHandler  logs/app-error.<date>.log (ERROR)

       `install()` attaches the sinks to the root logger so module loggers
       (logging.getLogger(__name__)) and uvicorn share them.
Who:   Created in the application lifespan from the `app.logger` section.

Severity mapping:
    verbose → 5 (custom VERBOSE level)   debug → DEBUG   info → INFO
    warn    → WARNING                    error → ERROR
"""

import json
import logging
import os
import sys
from datetime import datetime
from enum import Enum
from typing import IO, List, Optional

from keystone.config import LoggerSettings
from keystone.services.daily_rotate import DailyRotatingFileHandler

VERBOSE = 5
logging.addLevelName(VERBOSE, "VERBOSE")


class LogLevel(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    VERBOSE = "verbose"

    @property
    def numeric(self) -> int:
        return _NUMERIC_LEVELS[self]


_NUMERIC_LEVELS = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.VERBOSE: VERBOSE,
}

_LEVEL_NAMES = {numeric: level.value for level, numeric in _NUMERIC_LEVELS.items()}


class ContextFilter(logging.Filter):
    """Guarantees a `context` attribute so format strings never fail."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context") or record.context is None:
            record.context = record.name
        return True


class ConsoleFormatter(logging.Formatter):
    """`2024-06-20T10:00:00 [INFO] [Context] message` lines for terminals."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s [%(levelname)s] [%(context)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line for the file sinks."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname.lower()),
            "logger": record.name,
            "message": record.getMessage(),
            "context": getattr(record, "context", None),
        }
        if record.exc_info:
            data["stack"] = self.formatException(record.exc_info)
        elif getattr(record, "stack", None):
            data["stack"] = record.stack
        return json.dumps(data, ensure_ascii=False, default=str)


class LoggerService:
    """
    Per-severity logging calls routed to console and rotating-file sinks.

    Args:
        settings:  `app.logger` section (level, max_files, directory)
        stream:    Console stream, stdout by default
        log_dir:   Overrides settings.directory
        name:      Name of the façade's own logger

    Usage:
        service = LoggerService(config.app.logger)
        service.install()
        service.info("Listening", context="Bootstrap")
        service.error("Boom", stack=traceback.format_exc())
    """

    def __init__(
        self,
        settings: LoggerSettings,
        stream: Optional[IO[str]] = None,
        log_dir: Optional[str] = None,
        name: str = "keystone",
    ):
        self.settings = settings
        self.level = LogLevel(settings.level)
        self.log_dir = log_dir or settings.directory
        self.logger = logging.getLogger(name)
        self._previous_levels = {self.logger: self.logger.level}
        self.logger.setLevel(self.level.numeric)
        self._installed_on: Optional[logging.Logger] = None
        self.sinks: List[logging.Handler] = self._build_sinks(stream or sys.stdout)

    def _build_sinks(self, stream: IO[str]) -> List[logging.Handler]:
        context_filter = ContextFilter()

        console = logging.StreamHandler(stream)
        console.setLevel(self.level.numeric)
        console.setFormatter(ConsoleFormatter())

        general = DailyRotatingFileHandler(
            os.path.join(self.log_dir, "app.%DATE%.log"),
            max_files=self.settings.max_files,
            audit_file=os.path.join(self.log_dir, ".audit", "app.json"),
            level=self.level.numeric,
        )
        errors = DailyRotatingFileHandler(
            os.path.join(self.log_dir, "app-error.%DATE%.log"),
            max_files=self.settings.max_files,
            audit_file=os.path.join(self.log_dir, ".audit", "app-error.json"),
            level=logging.ERROR,
        )
        for handler in (general, errors):
            handler.setFormatter(JsonLineFormatter())

        sinks: List[logging.Handler] = [console, general, errors]
        for handler in sinks:
            handler.addFilter(context_filter)
        return sinks

    # ── Sink lifecycle ────────────────────────────────────────────────────

    def install(self, target: Optional[logging.Logger] = None) -> "LoggerService":
        """Attach the sinks to `target` (the root logger by default)."""
        target = target if target is not None else logging.getLogger()
        if self._installed_on is target:
            return self
        for handler in self.sinks:
            target.addHandler(handler)
        self._previous_levels.setdefault(target, target.level)
        if target.level == logging.NOTSET or target.level > self.level.numeric:
            target.setLevel(self.level.numeric)
        self._installed_on = target
        return self

    def close(self) -> None:
        """Detach and close every sink, restoring logger levels."""
        for handler in self.sinks:
            if self._installed_on is not None:
                self._installed_on.removeHandler(handler)
            handler.close()
        for target, level in self._previous_levels.items():
            target.setLevel(level)
        self._installed_on = None

    # ── Severity calls ────────────────────────────────────────────────────

    def _log(self, level: LogLevel, message: str, **extra) -> None:
        self.logger.log(level.numeric, message, extra=extra)

    def verbose(self, message: str, context: Optional[str] = None) -> None:
        self._log(LogLevel.VERBOSE, message, context=context)

    def debug(self, message: str, context: Optional[str] = None) -> None:
        self._log(LogLevel.DEBUG, message, context=context)

    def info(self, message: str, context: Optional[str] = None) -> None:
        self._log(LogLevel.INFO, message, context=context)

    log = info

    def warn(self, message: str, context: Optional[str] = None) -> None:
        self._log(LogLevel.WARN, message, context=context)

    def error(
        self,
        message: str,
        stack: Optional[str] = None,
        context: Optional[str] = None,
    ) -> None:
        """
        Log at ERROR severity.

        `stack` and `context` are folded into the single `context` field:
        an explicit context wins and the stack is then kept under `stack`;
        otherwise the stack (when given) becomes the context.
        """
        if context is not None:
            self._log(LogLevel.ERROR, message, context=context, stack=stack)
        else:
            self._log(LogLevel.ERROR, message, context=stack)
