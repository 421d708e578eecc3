from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from vecdb.vector.base import CollectionConfig
from vecdb.vector.collection import Collection
from vecdb.vector.errors import (
    CollectionExistsError,
    CollectionNotFoundError,
    InvalidConfigError,
    LockTimeoutError,
)

logger = logging.getLogger(__name__)


class CollectionRegistry:
    """Name -> Collection map shared by all request workers.

    Lock discipline: ``_lock`` guards only the dict and is never held while
    waiting on a collection lock. Each collection carries its own
    reader/writer lock; ``get_for_read`` takes it shared, ``get_for_write``
    exclusive. ``lock_timeout`` bounds every collection lock wait
    (``None`` waits forever).
    """

    def __init__(self, lock_timeout: Optional[float] = None) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, Collection] = {}
        self.lock_timeout = lock_timeout

    def create(self, name: str, config: CollectionConfig, dim: int) -> Collection:
        if not isinstance(name, str) or not name.strip():
            raise InvalidConfigError("Collection name must be a non-empty string")
        # Built outside the lock: config validation must not block other callers.
        collection = Collection(name, config, dim)
        with self._lock:
            if name in self._collections:
                raise CollectionExistsError(name)
            self._collections[name] = collection
        logger.info("Created collection %s (dim=%d, distance=%s)", name, dim, config.distance.value)
        return collection

    def list(self) -> list[str]:
        with self._lock:
            return list(self._collections)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._collections

    def __len__(self) -> int:
        with self._lock:
            return len(self._collections)

    def delete(self, name: str) -> None:
        collection = self._lookup(name)
        # Wait for in-flight readers and writers before dropping it.
        with collection.lock.write_lock(self.lock_timeout):
            with self._lock:
                if self._collections.get(name) is not collection:
                    raise CollectionNotFoundError(name)
                del self._collections[name]
        logger.info("Deleted collection %s", name)

    @contextmanager
    def get_for_read(self, name: str) -> Iterator[Collection]:
        with self._locked(name, exclusive=False) as collection:
            yield collection

    @contextmanager
    def get_for_write(self, name: str) -> Iterator[Collection]:
        with self._locked(name, exclusive=True) as collection:
            yield collection

    @contextmanager
    def _locked(self, name: str, *, exclusive: bool) -> Iterator[Collection]:
        collection = self._lookup(name)
        rwlock = collection.lock
        try:
            guard = rwlock.write_lock(self.lock_timeout) if exclusive else rwlock.read_lock(self.lock_timeout)
            with guard:
                # A concurrent delete may have won the race for the lock.
                with self._lock:
                    current = self._collections.get(name)
                if current is not collection:
                    raise CollectionNotFoundError(name)
                yield collection
        except LockTimeoutError:
            logger.warning("Lock wait on collection %s exceeded %ss", name, self.lock_timeout)
            raise

    def _lookup(self, name: str) -> Collection:
        with self._lock:
            collection = self._collections.get(name)
        if collection is None:
            raise CollectionNotFoundError(name)
        return collection
