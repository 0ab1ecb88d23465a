"""
Per-session exclusive locks.

Reservations for one session are admitted one at a time; sessions with
different ids never wait on each other. A lock only lives while some caller
holds or waits for it, so ids that never turn into sessions leave nothing behind.
"""
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator, List


class SessionLocks:
    def __init__(self) -> None:
        self._guard = Lock()
        # session_id -> [lock, number of callers holding or waiting]
        self._locks: Dict[int, List] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, session_id: int) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(session_id, [Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[session_id]
