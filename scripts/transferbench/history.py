"""Session history of completed benchmarks.

The HistoryStore is created by the host and passed to the orchestrator, which
is its only writer. Entries live for the lifetime of the process.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from .logger import logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .models import HistoryEntry


class HistoryStore:
    """Ordered, in-memory collection of HistoryEntry records."""

    def __init__(self) -> None:
        self._entries: list[HistoryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(tuple(self._entries))

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        """Snapshot of all entries in insertion order."""
        return tuple(self._entries)

    @property
    def latest(self) -> HistoryEntry | None:
        """Most recently added entry, if any."""
        return self._entries[-1] if self._entries else None

    def add(self, entry: HistoryEntry) -> None:
        """Append ``entry``.

        Raises:
            ValueError: If an entry with the same id is already stored.
        """
        if self.get(entry.id) is not None:
            msg = f"History already contains entry {entry.id}"
            raise ValueError(msg)
        self._entries.append(entry)
        logger.debug("🗂️ Added history entry %s (%d total)", entry.id, len(self._entries))

    def get(self, entry_id: str) -> HistoryEntry | None:
        """Look up an entry by id."""
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def remove(self, entry_id: str) -> bool:
        """Delete the entry with ``entry_id``.

        Returns:
            True if an entry was removed, False if no entry had that id.
        """
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                del self._entries[index]
                logger.debug("🗑️ Removed history entry %s", entry_id)
                return True
        return False

    def clear(self) -> None:
        """Delete every entry."""
        self._entries.clear()
        logger.debug("🗑️ History cleared")

    def duration_series(self) -> list[HistoryEntry]:
        """Entries comparable across payload durations.

        Keeps the entries that share the most common iteration count, so that
        only the payload size varies along the series.

        Returns:
            Matching entries sorted by payload duration.
        """
        if not self._entries:
            return []
        iterations = Counter(e.iteration_count for e in self._entries).most_common(1)[0][0]
        matching = [e for e in self._entries if e.iteration_count == iterations]
        return sorted(matching, key=lambda e: e.payload_duration_seconds)

    def iteration_series(self) -> list[HistoryEntry]:
        """Entries comparable across iteration counts.

        Keeps the entries that share the most common payload duration.

        Returns:
            Matching entries sorted by iteration count.
        """
        if not self._entries:
            return []
        duration = Counter(e.payload_duration_seconds for e in self._entries).most_common(1)[0][0]
        matching = [e for e in self._entries if e.payload_duration_seconds == duration]
        return sorted(matching, key=lambda e: e.iteration_count)
