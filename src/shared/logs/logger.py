"""Structured logging for the contact pipeline.

Wraps the standard library logger with:
- level filtering per logger instance
- context and source tags carried on every entry
- a bounded in-memory buffer that can be mirrored to a JSON-lines file
"""

import json
import logging
import os
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pythonjsonlogger import jsonlogger


DEFAULT_MAX_LOG_ENTRIES = 1000

_CONFIGURED = False


class LogBuffer:
    """Bounded store of log entries, oldest dropped first.

    The file mirror is appended to line by line and compacted to the newest
    max_entries once it reaches twice that size.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_LOG_ENTRIES, persist_path: Optional[str] = None):
        self.max_entries = max_entries
        self.persist_path = Path(persist_path) if persist_path else None
        self._entries: deque = deque(maxlen=max_entries)
        self._file_lines = 0
        self._load()

    def append(self, entry: Dict[str, Any]) -> None:
        self._entries.append(entry)
        if self.persist_path:
            self._persist(entry)

    def entries(self) -> List[Dict[str, Any]]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._file_lines = 0
        if self.persist_path and self.persist_path.exists():
            self.persist_path.unlink()

    def __len__(self) -> int:
        return len(self._entries)

    def _persist(self, entry: Dict[str, Any]) -> None:
        try:
            if self._file_lines + 1 >= 2 * self.max_entries:
                self._compact()
                return
            with open(self.persist_path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, default=str) + "\n")
            self._file_lines += 1
        except OSError as e:
            logging.getLogger(__name__).error(f"Failed to persist logs to {self.persist_path}: {str(e)}")

    def _compact(self) -> None:
        with open(self.persist_path, "w", encoding="utf-8") as fh:
            for entry in self._entries:
                fh.write(json.dumps(entry, default=str) + "\n")
        self._file_lines = len(self._entries)

    def _load(self) -> None:
        if not self.persist_path or not self.persist_path.exists():
            return
        try:
            with open(self.persist_path, encoding="utf-8") as fh:
                for line in fh:
                    line = line.strip()
                    if line:
                        self._entries.append(json.loads(line))
                        self._file_lines += 1
        except (OSError, ValueError) as e:
            logging.getLogger(__name__).error(f"Failed to load logs from {self.persist_path}: {str(e)}")


class StructuredLogger:
    """
    Level-filtered logger that records every emitted entry in a LogBuffer
    and forwards it to the standard library logger of the same name.

    Child loggers share the parent's buffer and merge their context over it.
    """

    def __init__(
        self,
        name: str = "contact",
        min_level: int = logging.DEBUG,
        enabled: bool = True,
        buffer: Optional[LogBuffer] = None,
        context: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ):
        self.name = name
        self.min_level = min_level
        self.enabled = enabled
        self.buffer = buffer if buffer is not None else LogBuffer()
        self.context = dict(context or {})
        self.source = source
        self._logger = logging.getLogger(name)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None, exc_info: bool = False) -> None:
        self.log(logging.ERROR, message, context, exc_info=exc_info)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log(logging.WARNING, message, context)

    warn = warning

    def info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log(logging.INFO, message, context)

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.log(logging.DEBUG, message, context)

    def log(self, level: int, message: str, context: Optional[Dict[str, Any]] = None, exc_info: bool = False) -> None:
        if not self.enabled or level < self.min_level:
            return

        merged = {**self.context, **(context or {})}
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "message": message,
            "context": merged,
            "source": self.source,
        }
        self.buffer.append(entry)
        self._logger.log(level, message, exc_info=exc_info, extra={"context": merged, "source": self.source})

    def child(self, context: Optional[Dict[str, Any]] = None, source: Optional[str] = None) -> "StructuredLogger":
        return StructuredLogger(
            name=self.name,
            min_level=self.min_level,
            enabled=self.enabled,
            buffer=self.buffer,
            context={**self.context, **(context or {})},
            source=source or self.source,
        )

    def get_logs(self) -> List[Dict[str, Any]]:
        return self.buffer.entries()

    def get_logs_by_level(self, level: int) -> List[Dict[str, Any]]:
        level_name = logging.getLevelName(level)
        return [entry for entry in self.buffer.entries() if entry["level"] == level_name]

    def get_logs_by_source(self, source: str) -> List[Dict[str, Any]]:
        return [entry for entry in self.buffer.entries() if entry["source"] == source]

    def clear_logs(self) -> None:
        self.buffer.clear()


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging with a JSON formatter. Safe to call more than once."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = getattr(logging, (level or os.environ.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(
        jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    logging.captureWarnings(True)
    _CONFIGURED = True


_default_logger: Optional[StructuredLogger] = None


def get_logger(source: Optional[str] = None, context: Optional[Dict[str, Any]] = None) -> StructuredLogger:
    """Return a child of the process default logger tagged with `source`."""
    global _default_logger
    if _default_logger is None:
        _default_logger = StructuredLogger(
            name="contact",
            min_level=getattr(logging, os.environ.get("LOG_LEVEL", "DEBUG").upper(), logging.DEBUG),
            buffer=LogBuffer(
                max_entries=int(os.environ.get("CONTACT_LOG_MAX_ENTRIES", DEFAULT_MAX_LOG_ENTRIES)),
                persist_path=os.environ.get("CONTACT_LOG_FILE") or None,
            ),
        )
    return _default_logger.child(context, source)
