"""
health_store.py - In-memory cache of the latest liveness result per bookmark.

Many threads may read while sweeps write; readers always receive copies so
nothing outside the store can mutate (or race on) the live map.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from models import HealthRecord, HealthStatus


class ReadWriteLock:
    """Multiple readers OR one writer; waiting writers block new readers."""

    def __init__(self):
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_lock(self):
        with self._condition:
            while self._writer or self._writers_waiting:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @contextmanager
    def write_lock(self):
        with self._condition:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._condition.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._condition:
                self._writer = False
                self._condition.notify_all()


class HealthStore:
    def __init__(self):
        self._lock = ReadWriteLock()
        self._records: Dict[int, HealthRecord] = {}

    def get(self, bookmark_id: int) -> Optional[HealthRecord]:
        with self._lock.read_lock():
            record = self._records.get(bookmark_id)
            return record.copy() if record else None

    def get_all(self) -> Dict[int, HealthRecord]:
        with self._lock.read_lock():
            return {bookmark_id: record.copy() for bookmark_id, record in self._records.items()}

    def put(self, record: HealthRecord) -> None:
        stored = record.copy()
        with self._lock.write_lock():
            self._records[stored.bookmark_id] = stored

    def broken(self) -> List[HealthRecord]:
        with self._lock.read_lock():
            return [
                record.copy()
                for record in self._records.values()
                if record.status == HealthStatus.BROKEN
            ]

    def stats(self, total: int) -> Dict[str, int]:
        """
        Counts records per status.

        Args:
            total: number of bookmarks in the repository; ``unchecked`` is the
                difference to the number of stored records (never negative,
                stale records of deleted bookmarks can outnumber the corpus).
        """
        counts = {status.value: 0 for status in HealthStatus}
        with self._lock.read_lock():
            for record in self._records.values():
                counts[record.status.value] += 1
            checked = len(self._records)

        counts["total"] = total
        counts["unchecked"] = max(0, total - checked)
        return counts

    def __len__(self) -> int:
        with self._lock.read_lock():
            return len(self._records)
