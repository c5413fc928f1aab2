"""Logging for the HVAC bridge.

Every record can carry a correlation id (one per ingested frame or set-request)
and a mapping of structured context passed through ``extra=``. Records are
written human-readable to a stream, as JSON lines to a file, or both.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import uuid
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing_extensions import override

__all__ = [
    "HumanReadableFormatter",
    "HvacLogger",
    "JSONFormatter",
    "correlation_scope",
    "get_correlation_id",
    "get_logger",
    "set_package_level",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("hvac_correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Return the correlation id of the current task/context, if any."""
    return _correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Generator[str]:
    """Run a block under a correlation id, restoring the outer one on exit.

    A fresh id is generated when none is given. Nested scopes inherit nothing:
    each frame or command gets its own id so its log lines can be grepped.
    """
    cid = correlation_id or uuid.uuid4().hex
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    context = getattr(record, "extra_data", None)
    if isinstance(context, Mapping) and context:
        return context
    return None


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context is not None:
            entry["context"] = dict(context)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``time level [module:line] [corr] > message | key=value ...``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        cid = get_correlation_id()
        record.correlation_id = f"[{cid[:8]}]" if cid else "[--------]"
        line = super().format(record)
        context = _context_of(record)
        if context is not None:
            line = line + " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return line


class HvacLogger:
    """Thin wrapper around :class:`logging.Logger` taking structured context.

    ``logger.info("%s sent", lp, extra={"bytes": 21})`` keeps the printf-style
    message and attaches the mapping so both formatters can render it.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        from hvac_bridge.const import HVAC_DEBUG

        self.name: str = name
        self.log_format: str = log_format
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if HVAC_DEBUG else logging.INFO)
        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output)

    def _configure_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        level = self.logger.level

        if self.log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
            except OSError as e:
                print(f"Warning: cannot open JSON log file {json_file}: {e}", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                json_handler.setLevel(level)
                self.logger.addHandler(json_handler)

        if self.log_format in ("human", "both"):
            target = human_output or "stdout"
            if target == "stdout":
                human_handler: logging.Handler = logging.StreamHandler(sys.stdout)
            elif target == "stderr":
                human_handler = logging.StreamHandler(sys.stderr)
            else:
                try:
                    human_path = Path(target)
                    human_path.parent.mkdir(parents=True, exist_ok=True)
                    human_handler = logging.FileHandler(human_path, mode="a")
                except OSError as e:
                    print(f"Warning: cannot open log file {target}: {e}", file=sys.stderr)
                    human_handler = logging.StreamHandler(sys.stdout)
            human_handler.setFormatter(HumanReadableFormatter())
            human_handler.setLevel(level)
            self.logger.addHandler(human_handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        payload = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=payload, stacklevel=2)

    def set_level(self, level: int) -> None:
        """Set the level on the logger and every handler it owns."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def set_package_level(level: int, package: str = "hvac_bridge") -> None:
    """Apply ``level`` to every logger (and its handlers) under ``package``."""
    for name, candidate in logging.Logger.manager.loggerDict.items():
        if not isinstance(candidate, logging.Logger):
            continue
        if name == package or name.startswith(f"{package}."):
            candidate.setLevel(level)
            for handler in candidate.handlers:
                handler.setLevel(level)


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> HvacLogger:
    """Return an :class:`HvacLogger`, defaulting to the HVAC_LOG_* settings."""
    from hvac_bridge.const import HVAC_LOG_FORMAT, HVAC_LOG_HUMAN_OUTPUT, HVAC_LOG_JSON_FILE

    return HvacLogger(
        name=name,
        log_format=log_format or HVAC_LOG_FORMAT,
        json_file=json_file or HVAC_LOG_JSON_FILE,
        human_output=human_output or HVAC_LOG_HUMAN_OUTPUT,
    )
