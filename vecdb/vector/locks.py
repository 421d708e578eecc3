from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterator

from vecdb.vector.errors import LockTimeoutError


class RWLock:
    """Reader/writer lock: many readers or one writer.

    Waiting writers block new readers, so a steady stream of searches cannot
    starve an upsert. ``timeout`` of ``None`` waits forever.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_lock(self, timeout: float | None = None) -> Iterator[None]:
        self.acquire_read(timeout)
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_lock(self, timeout: float | None = None) -> Iterator[None]:
        self.acquire_write(timeout)
        try:
            yield
        finally:
            self.release_write()

    def acquire_read(self, timeout: float | None = None) -> None:
        deadline = _deadline(timeout)
        with self._cond:
            while self._writer or self._writers_waiting:
                if not self._cond.wait(_remaining(deadline)):
                    raise LockTimeoutError(f"Timed out after {timeout}s waiting for read lock")
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self, timeout: float | None = None) -> None:
        deadline = _deadline(timeout)
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers > 0:
                    if not self._cond.wait(_remaining(deadline)):
                        raise LockTimeoutError(f"Timed out after {timeout}s waiting for write lock")
            finally:
                self._writers_waiting -= 1
                if not self._writers_waiting:
                    self._cond.notify_all()
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()


def _deadline(timeout: float | None) -> float | None:
    if timeout is None:
        return None
    return time.monotonic() + timeout


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())
