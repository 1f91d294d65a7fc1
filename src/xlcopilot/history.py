"""Bounded undo history for applied actions."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
import logging

from xlcopilot.actions.models import HistoryEntry, UndoResult
from xlcopilot.store.base import GridStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 20


class HistoryStack:
    """Newest-first stack of undo entries with a fixed capacity."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1.")
        self.max_entries = max_entries
        self._entries: deque[HistoryEntry] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        """Entries, newest first."""
        return tuple(self._entries)

    def add(self, entry: HistoryEntry) -> HistoryEntry | None:
        """Push an entry; return the oldest entry if it was evicted."""
        self._entries.appendleft(entry)
        if len(self._entries) > self.max_entries:
            return self._entries.pop()
        return None

    def latest(self) -> HistoryEntry | None:
        return self._entries[0] if self._entries else None

    def is_empty(self) -> bool:
        return not self._entries

    def clear(self) -> None:
        self._entries.clear()

    async def undo(self, store: GridStore) -> UndoResult:
        """Restore the newest snapshot.

        The entry is removed only after the store accepted the write, so a
        failed undo can be retried.
        """
        entry = self.latest()
        if entry is None:
            return UndoResult(status="empty", message="Nothing to undo")
        snapshot = entry.snapshot
        try:
            await store.write_range(snapshot.address, formulas=snapshot.formulas)
        except Exception as exc:
            logger.warning("Undo of %s failed: %s", entry.describe(), exc)
            return UndoResult(
                status="failed",
                message=f"Undo failed: {exc}",
                entry=entry,
            )
        self._entries.popleft()
        logger.info("Undid %s", entry.describe())
        return UndoResult(status="undone", message=f"Undid {entry.describe()}", entry=entry)


def format_relative_time(timestamp: datetime, now: datetime | None = None) -> str:
    """Format a timestamp as ``just now``, ``5 min ago``, ``yesterday``..."""
    current = now or datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    seconds = max(int((current - timestamp).total_seconds()), 0)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if seconds < 60:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    if hours < 24:
        return f"{hours} hr ago"
    if days == 1:
        return "yesterday"
    return f"{days} days ago"
