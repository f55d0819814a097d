"""Bounded Event Ledger -- the operator-facing activity log.

Every component writes here on both success and failure paths, so ``emit``
must never raise and never suspend. Entries are prepended (newest first)
and the ledger keeps only the most recent ``capacity`` of them.
"""

import itertools
import time

from collections import deque

from aegis.logging import get_logger
from aegis.models import LogCategory, LogEntry

logger = get_logger(__name__)

LEDGER_CAPACITY = 100

_LOG_LEVELS = {
    LogCategory.INFO: "info",
    LogCategory.SUCCESS: "info",
    LogCategory.TRADE: "info",
    LogCategory.ERROR: "warning",
}


class EventLedger:
    """Append-only, capped log of operational events.

    Backed by a ``deque(maxlen=capacity)``; ``appendleft`` drops the oldest
    entry from the right end once full. All operations are synchronous, so
    within a single event loop a reader can never observe a half-applied
    append.
    """

    def __init__(self, capacity: int = LEDGER_CAPACITY) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)

    def emit(self, category: LogCategory, message: str) -> LogEntry | None:
        """Record an event. Returns the new entry, or None if recording failed."""
        try:
            entry = LogEntry(
                id=next(self._ids),
                timestamp=time.time(),
                category=LogCategory(category),
                message=str(message),
            )
            self._entries.appendleft(entry)
        except Exception:
            logger.exception("ledger_emit_failed", message=message)
            return None

        getattr(logger, _LOG_LEVELS[entry.category])(
            "ledger_event", category=entry.category.value, message=entry.message
        )
        return entry

    def info(self, message: str) -> LogEntry | None:
        return self.emit(LogCategory.INFO, message)

    def success(self, message: str) -> LogEntry | None:
        return self.emit(LogCategory.SUCCESS, message)

    def error(self, message: str) -> LogEntry | None:
        return self.emit(LogCategory.ERROR, message)

    def trade(self, message: str) -> LogEntry | None:
        return self.emit(LogCategory.TRADE, message)

    def clear(self) -> None:
        """Empty the ledger entirely."""
        self._entries.clear()
        logger.info("ledger_cleared")

    def entries(self) -> tuple[LogEntry, ...]:
        """Return an immutable newest-first copy of the ledger."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
