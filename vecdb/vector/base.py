from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from vecdb.vector.distance import VectorMetric, normalize_metric
from vecdb.vector.errors import InvalidConfigError

MAX_RECORD_ID = 2**64 - 1


@dataclass(frozen=True)
class CollectionConfig:
    """Immutable per-collection index configuration."""

    distance: VectorMetric = VectorMetric.L2
    max_neighbors_per_node: int = 16
    search_breadth: int = 16
    max_elements: int = 10_000
    ef_search: Optional[int] = None
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "distance", normalize_metric(self.distance))
        if self.ef_search is None:
            object.__setattr__(self, "ef_search", self.search_breadth)
        for name in ("max_neighbors_per_node", "search_breadth", "max_elements", "ef_search"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigError(f"{name} must be an integer, got {value!r}")
        if self.max_neighbors_per_node < 2:
            raise InvalidConfigError(f"max_neighbors_per_node must be >= 2, got {self.max_neighbors_per_node}")
        if self.search_breadth < 1:
            raise InvalidConfigError(f"search_breadth must be >= 1, got {self.search_breadth}")
        if self.max_elements < 1:
            raise InvalidConfigError(f"max_elements must be >= 1, got {self.max_elements}")
        if self.ef_search < 1:
            raise InvalidConfigError(f"ef_search must be >= 1, got {self.ef_search}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "distance": self.distance.value,
            "max_neighbors_per_node": self.max_neighbors_per_node,
            "search_breadth": self.search_breadth,
            "max_elements": self.max_elements,
            "ef_search": self.ef_search,
            "seed": self.seed,
        }


@dataclass
class VectorRecord:
    id: int
    vector: list[float]
    payload: Any = None


@dataclass
class UpsertResult:
    inserted: int = 0
    replaced: int = 0
