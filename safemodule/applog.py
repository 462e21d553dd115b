"""Buffered application log written to a daily JSON-lines file or to MongoDB."""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from pymongo.errors import PyMongoError

_console = logging.getLogger(__name__)
_STOP = object()


class LogLevel(str, Enum):
    INFO = "INFO"
    ERROR = "ERROR"
    DEBUG = "DEBUG"
    WARN = "WARN"


def _rfc3339(moment: datetime) -> str:
    text = moment.astimezone().isoformat(timespec="seconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


class AppLogger:
    """Queues log entries and writes them from a background thread."""

    def __init__(
        self,
        use_db: bool = False,
        log_dir: str | Path = "logs",
        collection: Any = None,
        buffer_size: int = 1000,
        batch_size: int = 100,
        flush_interval: float = 5.0,
    ) -> None:
        if use_db and collection is None:
            raise ValueError("a collection is required when logging to the database")
        self.use_db = use_db
        self.log_dir = Path(log_dir)
        self.collection = collection
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=buffer_size)
        self._file = None
        self._thread: threading.Thread | None = None
        self._closed = False

    @property
    def path(self) -> Path:
        return self.log_dir / f"app_{date.today():%Y-%m-%d}.log"

    def start(self) -> None:
        """Open the log file if needed and start the writer thread."""
        if not self.use_db:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._file = self.path.open("a", encoding="utf-8")
        self._thread = threading.Thread(target=self._run, name="app-logger", daemon=True)
        self._thread.start()

    def log(self, level: LogLevel | str, message: str, data: Mapping[str, Any] | None = None) -> None:
        """Queue an entry; drop it with a warning when the buffer is full."""
        if self._closed:
            _console.warning("Logger is closed, dropping log entry: %s", message)
            return
        entry: dict[str, Any] = {
            "timestamp": datetime.now(),
            "level": getattr(level, "value", level),
            "message": message,
        }
        if data:
            entry.update(data)
        try:
            self._queue.put_nowait(entry)
        except queue.Full:
            _console.warning("Log buffer is full, dropping log entry: %s", message)

    def close(self) -> None:
        """Write what is still queued, stop the writer and close the file."""
        if self._closed:
            return
        self._closed = True
        if self._thread is not None:
            pending = self._queue.qsize()
            if pending:
                _console.info("Processing %d remaining logs...", pending)
            self._queue.put(_STOP)
            self._thread.join()
            self._thread = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def _run(self) -> None:
        batch: list[dict[str, Any]] = []
        next_flush = time.monotonic() + self.flush_interval
        while True:
            try:
                entry = self._queue.get(timeout=max(0.0, next_flush - time.monotonic()))
            except queue.Empty:
                entry = None
            if entry is _STOP:
                break
            if entry is not None:
                if self.use_db:
                    batch.append(entry)
                    if len(batch) >= self.batch_size:
                        self._save_batch(batch)
                        batch = []
                else:
                    self._save_to_file(entry)
            if time.monotonic() >= next_flush:
                if self.use_db and batch:
                    self._save_batch(batch)
                    batch = []
                next_flush = time.monotonic() + self.flush_interval
        if batch:
            self._save_batch(batch)

    def _save_to_file(self, entry: dict[str, Any]) -> None:
        if self._file is None:
            return
        entry["timestamp"] = _rfc3339(datetime.now())
        try:
            line = json.dumps(entry, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as exc:
            _console.error("Error marshaling log entry: %s", exc)
            return
        try:
            self._file.write(line + "\n")
            self._file.flush()
        except OSError as exc:
            _console.error("Error writing to log file: %s", exc)

    def _save_batch(self, batch: list[dict[str, Any]]) -> None:
        if not batch:
            return
        try:
            self.collection.insert_many(list(batch))
        except PyMongoError as exc:
            _console.error("Error saving logs to MongoDB: %s", exc)
            for entry in batch:
                _console.error("Failed log entry: %s", json.dumps(entry, ensure_ascii=False, default=str))


_logger: AppLogger | None = None


def init_logger(use_db: bool = False, collection: Any = None) -> AppLogger:
    """Start the process-wide logger."""
    global _logger
    if _logger is not None:
        _logger.close()
    logger = AppLogger(use_db=use_db, collection=collection)
    logger.start()
    _logger = logger
    return logger


def log(level: LogLevel | str, message: str, data: Mapping[str, Any] | None = None) -> None:
    """Log through the process-wide logger; drop the entry if none is running."""
    if _logger is None:
        _console.warning("Logger not initialised, dropping log entry: %s", message)
        return
    _logger.log(level, message, data)


def close_logger() -> None:
    """Stop the process-wide logger."""
    global _logger
    if _logger is not None:
        _logger.close()
        _logger = None