"""
Idata Structured Logger
========================

:class:`IdataLogger` is a thin facade over :mod:`logging`.  Records go to
stderr through Rich and, when a log file is configured, to a rotating file
as plain text or JSON lines.

Every record is stamped with the ``tool_name`` of the component that wrote
it and the ``operation`` bound by :meth:`IdataLogger.operation`, so a
decode can be followed table by table in the JSON log.

References:
    - Python logging cookbook. https://docs.python.org/3/howto/logging-cookbook.html
    - Rich logging handler. https://rich.readthedocs.io/en/stable/logging.html
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

LOGGER_PREFIX: str = "idata"

_TEXT_FORMAT: str = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
_TEXT_DATEFMT: str = "%Y-%m-%dT%H:%M:%S%z"

_STDERR_THEME = Theme(
    {
        "log.level.debug": "dim",
        "log.level.info": "cyan",
        "log.level.warning": "yellow",
        "log.level.error": "bold red",
        "log.level.critical": "reverse bold red",
    }
)

# LogRecord keyword arguments that are not structured fields.
_RESERVED_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel"})


class _JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Always present: ``timestamp``, ``level``, ``logger``, ``message``.
    Present when set: ``tool_name``, ``operation``, ``extra``, ``exc_info``.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, getattr(record, key))
            for key in ("tool_name", "operation")
            if getattr(record, key, None) is not None
        )
        if getattr(record, "idata_fields", None):
            payload["extra"] = record.idata_fields  # type: ignore[attr-defined]
        if record.exc_info and record.exc_info[1] is not None:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _stderr_handler(level: int) -> logging.Handler:
    return RichHandler(
        console=Console(theme=_STDERR_THEME, stderr=True),
        level=level,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )


def _file_handler(
    log_file: str | Path,
    level: int,
    *,
    json_logs: bool,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(
        _JSONFormatter() if json_logs
        else logging.Formatter(_TEXT_FORMAT, datefmt=_TEXT_DATEFMT)
    )
    return handler


def _level_of(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


class Stopwatch:
    """Elapsed wall time of a :meth:`IdataLogger.timed` block."""

    __slots__ = ("started", "stopped")

    def __init__(self) -> None:
        self.started: float = time.perf_counter()
        self.stopped: float | None = None

    @property
    def elapsed(self) -> float:
        end = self.stopped if self.stopped is not None else time.perf_counter()
        return end - self.started


class IdataLogger:
    """Logger bound to one Idata component.

    Usage::

        log = IdataLogger("parsers.lookup_table")
        with log.operation("lookup_table"):
            log.debug("reading entry at 0x%x", rva)
        log.warning("lookup table aborted", directory_index=3)

    Keyword arguments other than ``exc_info``, ``stack_info`` and
    ``stacklevel`` become structured fields, written under ``extra`` by the
    JSON file handler.

    Args:
        tool_name:      Component name; the stdlib logger is ``idata.<tool_name>``.
        log_level:      Minimum severity name.
        log_file:       Rotating log file path, ``None`` or ``""`` to disable.
        json_logs:      Write JSON lines instead of plain text to *log_file*.
        max_bytes:      Rotation size of the log file.
        backup_count:   Rotated files to keep.
        console_output: Attach the Rich stderr handler.
    """

    def __init__(
        self,
        tool_name: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        console_output: bool = True,
    ) -> None:
        self._tool_name = tool_name
        self._operation: str | None = None

        level = _level_of(log_level)
        self._logger = logging.getLogger(f"{LOGGER_PREFIX}.{tool_name}")
        self._logger.setLevel(level)
        # Records stay out of the root logger; handlers are rebuilt on re-init.
        self._logger.propagate = False
        for old in list(self._logger.handlers):
            self._logger.removeHandler(old)
            old.close()

        if console_output:
            self._logger.addHandler(_stderr_handler(level))
        if log_file:
            self._logger.addHandler(_file_handler(
                log_file, level,
                json_logs=json_logs, max_bytes=max_bytes, backup_count=backup_count,
            ))

    @classmethod
    def _bind(cls, logger: logging.Logger, tool_name: str) -> IdataLogger:
        bound = cls.__new__(cls)
        bound._tool_name = tool_name
        bound._operation = None
        bound._logger = logger
        return bound

    def child(self, component: str) -> IdataLogger:
        """Logger for *component* that writes through this logger's handlers.

        The child has no handlers of its own; its level follows this logger.
        """
        logger = self._logger.getChild(component)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
        return self._bind(logger, component)

    @property
    def tool_name(self) -> str:
        return self._tool_name

    @property
    def underlying(self) -> logging.Logger:
        """The wrapped stdlib :class:`logging.Logger`."""
        return self._logger

    @contextmanager
    def operation(self, name: str) -> Iterator[IdataLogger]:
        """Tag records emitted inside the block with ``operation=name``."""
        previous, self._operation = self._operation, name
        try:
            yield self
        finally:
            self._operation = previous

    @contextmanager
    def timed(self, label: str) -> Iterator[Stopwatch]:
        """Log *label* at DEBUG on entry and its duration at INFO on exit."""
        self.debug("Started: %s", label)
        watch = Stopwatch()
        try:
            yield watch
        finally:
            watch.stopped = time.perf_counter()
            self.info("Completed: %s (%.3f sec)", label, watch.elapsed)

    # ------------------------------------------------------------------ #
    #  Log methods
    # ------------------------------------------------------------------ #

    def _log(self, level: int, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        options = {k: kwargs.pop(k) for k in kwargs.keys() & _RESERVED_KWARGS}
        extra: dict[str, Any] = dict(kwargs.pop("extra", None) or {})
        extra.update(tool_name=self._tool_name, operation=self._operation)
        if kwargs:
            extra["idata_fields"] = kwargs
        options.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, extra=extra, **options)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, args, kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, kwargs)


def set_level(log_level: str) -> None:
    """Apply *log_level* to every ``idata.*`` logger and its handlers."""
    level = _level_of(log_level)
    prefix = f"{LOGGER_PREFIX}."
    for name, obj in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith(prefix) and isinstance(obj, logging.Logger):
            obj.setLevel(level)
            for handler in obj.handlers:
                handler.setLevel(level)


def component_logger(component: str) -> IdataLogger:
    """Handler-less logger for library code, ``idata.<component>``.

    Records propagate to the ``idata`` logger, which carries only a
    :class:`logging.NullHandler`; applications attach their own handlers.
    """
    return IdataLogger._bind(logging.getLogger(f"{LOGGER_PREFIX}.{component}"), component)


logging.getLogger(LOGGER_PREFIX).addHandler(logging.NullHandler())
