from __future__ import annotations


class VectorDBError(Exception):
    """Base class for every error raised by the vector core."""


class CollectionNotFoundError(VectorDBError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Collection not found: {name}")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class CollectionExistsError(VectorDBError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Collection already exists: {name}")
        self.name = name


class InvalidConfigError(VectorDBError, ValueError):
    pass


class DimensionMismatchError(VectorDBError, ValueError):
    def __init__(self, expected: int, actual: int, position: int | None = None) -> None:
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Vector dimension mismatch{where}: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
        self.position = position


class ArityMismatchError(VectorDBError, ValueError):
    pass


class InvalidVectorError(VectorDBError, ValueError):
    pass


class CapacityExceededError(VectorDBError):
    def __init__(self, capacity: int, requested: int) -> None:
        super().__init__(f"Index capacity exceeded: max_elements={capacity}, requested total={requested}")
        self.capacity = capacity
        self.requested = requested


class LockTimeoutError(VectorDBError):
    pass
