"""
Portal Logging.

JSON-lines logging for the portal: one object per record on stdout and in
a size-rotated file.  Handler sizes, level and file location come from an
injected ``AppConfig`` through :meth:`StructuredLogger.from_config`; the
module never reads configuration on its own.

Credentials can reach a log call through ``extra`` (a sign-in payload, a
magic-link token hash).  Their values are masked before serialization.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TextIO, Union

if TYPE_CHECKING:
    from portal.config import AppConfig

DEFAULT_LOG_FILE = "portal.log"
DEFAULT_MAX_BYTES = 5_242_880  # 5 MB
DEFAULT_BACKUP_COUNT = 3

REDACTED = "***"

# Keys of ``extra`` whose values are never written out.
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "access_token",
        "refresh_token",
        "token_hash",
        "anon_key",
        "supabase_anon_key",
    }
)

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime"}


def _masked(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_KEYS:
        return REDACTED
    if isinstance(value, dict):
        return {k: _masked(str(k), v) for k, v in value.items()}
    return value


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON object.

    Keys: ``timestamp`` (UTC, ISO-8601), ``level``, ``logger_name``,
    ``message``, plus ``extra`` for caller-supplied fields and
    ``exception`` when traceback text is attached.  Extra values keep
    their JSON type; anything else is stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: _masked(key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            payload["exception"] = record.exc_text

        return json.dumps(payload, ensure_ascii=False, default=str)


class StructuredLogger:
    """Injectable wrapper over a named ``logging.Logger``.

    Handlers are attached the first time a name is used; later instances
    with the same name share them, whatever arguments they pass.

    Usage::

        log = StructuredLogger.from_config(config, name="portal")
        log.info("Session restored", extra={"user_id": "abc-123"})
    """

    def __init__(
        self,
        name: str = "portal",
        level: Union[int, str] = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = DEFAULT_LOG_FILE,
        max_bytes: int = DEFAULT_MAX_BYTES,
        backup_count: int = DEFAULT_BACKUP_COUNT,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)
        if not self._logger.handlers:
            self._attach_handlers(level, stream, log_file, max_bytes, backup_count)

    @classmethod
    def from_config(
        cls,
        config: "AppConfig",
        name: str = "portal",
        stream: Optional[TextIO] = None,
    ) -> "StructuredLogger":
        """Build a logger whose level, file and rotation follow *config*."""
        return cls(
            name=name,
            level=config.LOG_LEVEL.upper(),
            stream=stream,
            log_file=config.LOG_FILE or None,
            max_bytes=config.LOG_MAX_BYTES,
            backup_count=config.LOG_BACKUP_COUNT,
        )

    def _attach_handlers(
        self,
        level: Union[int, str],
        stream: Optional[TextIO],
        log_file: Optional[str],
        max_bytes: int,
        backup_count: int,
    ) -> None:
        formatter = JSONFormatter()

        def _add(handler: logging.Handler) -> None:
            handler.setLevel(level)
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)

        _add(logging.StreamHandler(stream or sys.stdout))

        if not log_file:
            return
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _add(
                RotatingFileHandler(
                    path,
                    maxBytes=max_bytes,
                    backupCount=backup_count,
                    encoding="utf-8",
                )
            )
        except OSError as exc:
            self._logger.warning("Log file %s unavailable (%s); console only.", path, exc)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "portal", config: Optional["AppConfig"] = None) -> StructuredLogger:
    """Logger for *name*, configured from *config* when one is given."""
    if config is not None:
        return StructuredLogger.from_config(config, name=name)
    return StructuredLogger(name=name)
