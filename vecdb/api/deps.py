from __future__ import annotations

from vecdb.config import settings
from vecdb.vector.registry import CollectionRegistry

registry = CollectionRegistry(lock_timeout=settings.lock_timeout)


def get_registry() -> CollectionRegistry:
    return registry
