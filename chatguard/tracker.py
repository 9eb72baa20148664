from __future__ import annotations

import collections
import datetime as dt
import threading
from collections.abc import Hashable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class TrackedMessage:
    text: str
    observed_at: dt.datetime


@dataclass
class SpamRecord:
    max_history: int = 6
    recent: collections.deque[TrackedMessage] = field(default_factory=collections.deque)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def append(self, text: str, now: dt.datetime) -> None:
        self.recent.append(TrackedMessage(text=text, observed_at=now))
        while len(self.recent) > self.max_history:
            self.recent.popleft()

    def resize(self, max_history: int) -> None:
        self.max_history = max_history
        while len(self.recent) > max_history:
            self.recent.popleft()

    def latest(self) -> TrackedMessage | None:
        return self.recent[-1] if self.recent else None

    def oldest(self) -> TrackedMessage | None:
        return self.recent[0] if self.recent else None


class SpamTracker:
    """Per-participant message history, keyed by an opaque identity.

    Records are created on first use and dropped only through ``remove``,
    which the host calls when a participant disconnects.
    """

    def __init__(self, max_history: int = 6) -> None:
        self.max_history = max_history
        self.records: dict[Hashable, SpamRecord] = {}
        self._lock = threading.Lock()

    def get_or_create(self, key: Hashable) -> SpamRecord:
        with self._lock:
            record = self.records.get(key)
            if record is None:
                record = SpamRecord(max_history=self.max_history)
                self.records[key] = record
            return record

    def resize(self, max_history: int) -> None:
        """Apply a new history bound to every record, dropping the oldest entries."""
        with self._lock:
            self.max_history = max_history
            records = list(self.records.values())
        for record in records:
            with record.lock:
                record.resize(max_history)

    def remove(self, key: Hashable) -> None:
        with self._lock:
            self.records.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self.records

    def __len__(self) -> int:
        with self._lock:
            return len(self.records)
