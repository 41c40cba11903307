"""Diagnostics sinks: write-only record of every attempt made by the engine"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEBUG = "debug"
INFO = "info"
ERROR = "error"

_LEVELS = {
    DEBUG: logging.DEBUG,
    INFO: logging.INFO,
    ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class DiagnosticEntry:
    scope: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)


class DiagnosticsSink(ABC):
    """Abstract destination for engine diagnostics

    Recording never influences command or file semantics: a sink that
    raises is reported on the module logger and otherwise ignored.
    """

    @abstractmethod
    def record(self, scope: str, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        """Store one entry

        Args:
            scope: One of "debug", "info", "error"
            message: Human-readable message
            fields: Structured payload (command output, errors, ...)
        """
        pass

    def _emit(self, scope: str, message: str, fields: Optional[Dict[str, Any]]) -> None:
        try:
            self.record(scope, message, dict(fields or {}))
        except Exception as e:
            logger.warning(f"Dropped diagnostics entry: {e}")

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(INFO, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(ERROR, message, fields)


class LoggingSink(DiagnosticsSink):
    """Forward diagnostics to the standard logging module"""

    def __init__(self, logger_name: str = "sshscript.diagnostics"):
        self.logger = logging.getLogger(logger_name)

    def record(self, scope: str, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        level = _LEVELS.get(scope, logging.DEBUG)
        # Payload goes through arguments so remote output is never treated as a format string
        if fields:
            self.logger.log(level, "%s %r", message, fields)
        else:
            self.logger.log(level, "%s", message)


class MemorySink(DiagnosticsSink):
    """Keep diagnostics in memory, mostly for tests"""

    def __init__(self):
        self.entries: List[DiagnosticEntry] = []
        self._lock = threading.Lock()

    def record(self, scope: str, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self.entries.append(DiagnosticEntry(scope, message, dict(fields or {})))

    def by_scope(self, scope: str) -> List[DiagnosticEntry]:
        return [entry for entry in self.entries if entry.scope == scope]

    def clear(self) -> None:
        with self._lock:
            self.entries.clear()


class NullSink(DiagnosticsSink):
    """Discard everything"""

    def record(self, scope: str, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        pass
