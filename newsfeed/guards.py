# newsfeed/guards.py
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Set, Tuple


class InFlightGuard:
    """
    One flag per key. A second claim while the first is held is refused
    rather than queued, so redundant triggers are simply dropped.
    """

    def __init__(self):
        self._active: Set[Hashable] = set()
        self._lock = threading.Lock()

    def try_claim(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._active:
                return False
            self._active.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._lock:
            self._active.discard(key)

    def is_active(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._active


class UserLocks:
    """
    Serializes read-modify-write per user; different users never contend.
    A user's lock lives only while someone holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_ref(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(user_id) or (threading.Lock(), 0)
            self._locks[user_id] = (lock, users + 1)
            return lock

    def _release_ref(self, user_id: str) -> None:
        with self._guard:
            lock, users = self._locks[user_id]
            if users <= 1:
                del self._locks[user_id]
            else:
                self._locks[user_id] = (lock, users - 1)

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self._acquire_ref(user_id)
        try:
            with lock:
                yield
        finally:
            self._release_ref(user_id)
