import threading
from contextlib import contextmanager
from typing import Dict


class RoomLocks:
    """One re-entrant lock per room code.

    Every read-then-write on a room's membership or live round runs under
    ``hold(code)``. Different rooms never contend with each other.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, code: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(code)
            if lock is None:
                lock = threading.RLock()
                self._locks[code] = lock
            return lock

    @contextmanager
    def hold(self, code: str):
        lock = self._lock_for(code)
        with lock:
            yield

    def __contains__(self, code: str) -> bool:
        with self._guard:
            return code in self._locks

    def discard(self, code: str) -> None:
        """Forget a room's lock once the room is gone or its game is over."""
        with self._guard:
            self._locks.pop(code, None)
