"""In-memory record identifier registry shared by all workers."""

from __future__ import annotations

from threading import Lock


class Deduplicator:
    """First-writer-wins set of seen record identifiers.

    The set only grows for the lifetime of an export; nothing is persisted.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._lock = Lock()
        self._duplicates = 0

    def check_and_mark(self, record_id: str) -> bool:
        """Return ``True`` if ``record_id`` was already seen, else record it."""

        with self._lock:
            if record_id in self._seen:
                self._duplicates += 1
                return True
            self._seen.add(record_id)
            return False

    @property
    def duplicates(self) -> int:
        return self._duplicates


__all__ = ["Deduplicator"]
