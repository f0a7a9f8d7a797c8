import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLock:
    """Process-wide mutexes keyed by an arbitrary hashable.

    Locks are reference counted and dropped when the last holder leaves so
    the registry does not grow with every (block, date) ever booked.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._refs: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refs[key] = self._refs.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


def block_date_key(block_id: int, day) -> tuple:
    return ('block', block_id, day.isoformat())


def slot_key(slot_id: int) -> tuple:
    return ('slot', slot_id)


def reservation_key(reservation_id: int) -> tuple:
    return ('reservation', reservation_id)


def user_key(user_id: int) -> tuple:
    return ('user', user_id)


def week_key(monday) -> tuple:
    return ('week', monday.isoformat())
