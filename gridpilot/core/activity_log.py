"""Bounded, human-readable activity log.

Every entry is also emitted as a structlog event so the JSON log file
carries the same history the operator sees.
"""
from collections import deque
from typing import Deque, List, Optional

import structlog

from gridpilot.core.models import LogEntry, LogSeverity

logger = structlog.get_logger(__name__)


class ActivityLog:
    """Append-only log keeping the most recent ``max_entries`` lines."""

    DEFAULT_MAX_ENTRIES = 50

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)

    def add(self, message: str, severity: LogSeverity = LogSeverity.INFO) -> LogEntry:
        """Append an entry, evicting the oldest when full."""
        entry = LogEntry(message=message, severity=severity)
        self._entries.append(entry)

        if severity == LogSeverity.ERROR:
            logger.error("activity.entry", message=message, severity=severity.value)
        elif severity == LogSeverity.WARNING:
            logger.warning("activity.entry", message=message, severity=severity.value)
        else:
            logger.info("activity.entry", message=message, severity=severity.value)

        return entry

    def info(self, message: str) -> LogEntry:
        return self.add(message, LogSeverity.INFO)

    def success(self, message: str) -> LogEntry:
        return self.add(message, LogSeverity.SUCCESS)

    def warning(self, message: str) -> LogEntry:
        return self.add(message, LogSeverity.WARNING)

    def error(self, message: str) -> LogEntry:
        return self.add(message, LogSeverity.ERROR)

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Entries newest first."""
        newest_first = list(reversed(self._entries))
        return newest_first[:limit] if limit is not None else newest_first

    @property
    def latest(self) -> Optional[LogEntry]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
