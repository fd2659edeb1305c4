"""Structured JSON logger for scrape runs."""
from __future__ import annotations

import json
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, TextIO

__all__ = ["JsonLogger", "get_logger", "log_event", "timed_event", "new_run_id"]


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S%f")


def _configured_log_file() -> str | None:
    from order_scraper.config import config

    raw = config.json_log_file.strip()
    return raw or None


_FROM_CONFIG = object()


class JsonLogger:
    """Write one JSON object per event to a stream and, optionally, a log file."""

    def __init__(
        self,
        run_id: Optional[str] = None,
        stream: TextIO | None = None,
        *,
        log_file_path: str | None | object = _FROM_CONFIG,
    ):
        self.run_id = run_id or new_run_id()
        self.stream = stream or sys.stderr
        self.context: Dict[str, Any] = {"run_id": self.run_id}
        raw_path = _configured_log_file() if log_file_path is _FROM_CONFIG else log_file_path
        self.log_file_path = self._prepare_path(raw_path)
        self._file = open(self.log_file_path, "a", encoding="utf-8") if self.log_file_path else None
        self._parent: JsonLogger | None = None
        self._closed = False

    def bind(self, **fields: Any) -> "JsonLogger":
        """Return a child logger that adds ``fields`` to every event."""

        child = JsonLogger(run_id=self.run_id, stream=self.stream, log_file_path=None)
        child.context = {**self.context, **fields}
        child.log_file_path = self.log_file_path
        child._file = self._file
        child._parent = self._root
        return child

    @property
    def _root(self) -> "JsonLogger":
        return self._parent or self

    @staticmethod
    def _prepare_path(raw_path: Any) -> str | None:
        if not raw_path:
            return None
        path = Path(str(raw_path)).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)

    @property
    def closed(self) -> bool:
        return self._root._closed

    def _write(self, event: Dict[str, Any]) -> None:
        line = json.dumps(event, default=str, ensure_ascii=False) + "\n"
        self.stream.write(line)
        self.stream.flush()
        if self._file:
            self._file.write(line)
            self._file.flush()

    def info(self, *, phase: str, status: str = "ok", message: str = "", **fields: Any) -> None:
        if self.closed:
            return
        event = {**self.context, "phase": phase, "status": status, "message": message, **fields}
        event.setdefault("ts", datetime.now(timezone.utc).isoformat())
        self._write(event)

    def warn(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="warn", message=message, **fields)

    def error(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="error", message=message, **fields)

    def close(self) -> None:
        if self._parent is not None or self._closed:
            return
        self._closed = True
        if self._file:
            self._file.close()
            self._file = None


def get_logger(run_id: Optional[str] = None) -> JsonLogger:
    return JsonLogger(run_id=run_id)


def log_event(*, logger: JsonLogger, phase: str, status: str = "ok", message: str = "", **extras: Any) -> None:
    logger.info(phase=phase, status=status, message=message, **extras)


@contextmanager
def timed_event(*, logger: JsonLogger, phase: str, message: str = "", **fields: Any) -> Iterator[None]:
    """Log ``message`` with the elapsed milliseconds once the block finishes."""

    started = time.perf_counter()
    try:
        yield
    except Exception as exc:
        elapsed = int((time.perf_counter() - started) * 1000)
        logger.error(
            phase=phase,
            message=f"{message} failed: {exc}",
            duration_ms=elapsed,
            exception=repr(exc),
            **fields,
        )
        raise
    elapsed = int((time.perf_counter() - started) * 1000)
    logger.info(phase=phase, message=message, duration_ms=elapsed, **fields)
