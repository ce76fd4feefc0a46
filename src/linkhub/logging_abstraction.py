"""Logging abstraction layer for linkhub.

Every module logs through ``get_logger(__name__)``. Records carry the current
correlation ID and an optional structured ``extra`` mapping, rendered either as
one JSON object per line or as a human-readable line with ``key=value`` pairs
appended.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "LinkHubLogger",
    "get_logger",
]

_NO_CORRELATION = "[--------]"


def _extra_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return cast("Mapping[str, object]", extra_data)
    return None


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON document per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        # Import here to avoid circular dependency
        from linkhub.correlation import get_correlation_id

        doc: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _extra_of(record)
        if context is not None:
            doc["context"] = dict(context)
        if record.exc_info:
            doc["exception"] = self.formatException(record.exc_info)
        return json.dumps(doc, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter for console output: timestamp, level, location, correlation ID."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        from linkhub.correlation import get_correlation_id

        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else _NO_CORRELATION
        formatted = super().format(record)

        context = _extra_of(record)
        if context is not None:
            formatted += " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted


def _stream_or_file_handler(target: str) -> logging.Handler:
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")


class LinkHubLogger:
    """Thin wrapper over :class:`logging.Logger` with structured context.

    ``extra`` is accepted by every level method and kept on the record as
    ``extra_data`` so the formatters can render it without colliding with
    standard ``LogRecord`` attributes.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        """Initialize the logger.

        Args:
            name: Logger name (typically module name)
            log_format: "json", "human", or "both"
            json_file: Path for JSON output (None disables JSON file output)
            human_output: "stdout", "stderr", or a file path

        """
        from linkhub.const import LINKHUB_DEBUG

        self.name: str = name
        self.log_format: str = log_format
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if LINKHUB_DEBUG else logging.INFO)

        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output)

    def _configure_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        level = self.logger.level

        if self.log_format in ("json", "both") and json_file:
            try:
                json_handler = _stream_or_file_handler(str(json_file))
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                json_handler.setLevel(level)
                self.logger.addHandler(json_handler)

        if self.log_format in ("human", "both"):
            target = human_output or "stdout"
            try:
                human_handler = _stream_or_file_handler(target)
            except OSError as e:
                print(f"Warning: Failed to create human log file {target}: {e}", file=sys.stderr)
                human_handler = logging.StreamHandler(sys.stdout)
            human_handler.setFormatter(HumanReadableFormatter())
            human_handler.setLevel(level)
            self.logger.addHandler(human_handler)

    @staticmethod
    def _wrap(extra: Mapping[str, object] | None) -> Mapping[str, object] | None:
        return {"extra_data": dict(extra)} if extra else None

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.logger.log(level, msg, *args, extra=self._wrap(extra), stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def critical(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.CRITICAL, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        self.logger.exception(msg, *args, extra=self._wrap(extra), stacklevel=2)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> LinkHubLogger:
    """Get a LinkHubLogger configured from the LINKHUB_LOG_* environment settings.

    Explicit arguments override the environment defaults.
    """
    from linkhub.const import (
        LINKHUB_LOG_FORMAT,
        LINKHUB_LOG_HUMAN_OUTPUT,
        LINKHUB_LOG_JSON_FILE,
    )

    return LinkHubLogger(
        name=name,
        log_format=log_format or LINKHUB_LOG_FORMAT,
        json_file=json_file or LINKHUB_LOG_JSON_FILE,
        human_output=human_output or LINKHUB_LOG_HUMAN_OUTPUT,
    )
