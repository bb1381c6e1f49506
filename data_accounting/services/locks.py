from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class PageLocks:
    """One mutex per page so two revisions of the same page never finalize at once.

    Pages are independent; holding the lock for one page never blocks another.
    A page's mutex is dropped as soon as no thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, threads holding or waiting]
        self._locks: dict[Hashable, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._checkin(key)


# Process-wide default shared by ledgers that are not given their own.
page_locks = PageLocks()
