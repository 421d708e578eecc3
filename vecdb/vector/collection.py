from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np

from vecdb.vector.base import MAX_RECORD_ID, CollectionConfig, UpsertResult, VectorRecord
from vecdb.vector.errors import (
    ArityMismatchError,
    CapacityExceededError,
    DimensionMismatchError,
    InvalidConfigError,
    InvalidVectorError,
)
from vecdb.vector.hnsw import HNSWIndex
from vecdb.vector.locks import RWLock

logger = logging.getLogger(__name__)


class Collection:
    """One named collection: config, record store and its HNSW index.

    Re-upserting an existing id replaces the stored record and tombstones the
    previous graph node, so each id is returned at most once by ``search``.

    Methods do no locking themselves; ``lock`` is taken by the registry.
    """

    def __init__(self, name: str, config: CollectionConfig, dim: int) -> None:
        if isinstance(dim, bool) or not isinstance(dim, int) or dim < 1:
            raise InvalidConfigError(f"dim must be a positive integer, got {dim!r}")
        self.name = name
        self.config = config
        self.dim = dim
        self.lock = RWLock()
        self.index = HNSWIndex(
            dim,
            config.distance,
            max_neighbors=config.max_neighbors_per_node,
            ef_construction=config.search_breadth,
            ef_search=config.ef_search,
            max_elements=config.max_elements,
            seed=config.seed,
        )
        self._records: dict[int, VectorRecord] = {}
        self._node_of: dict[int, int] = {}
        self._id_of_node: list[int] = []

    def __len__(self) -> int:
        return len(self._records)

    def upsert(
        self,
        ids: Sequence[int],
        vectors: Sequence[Sequence[float]],
        payloads: Optional[Sequence[Any]] = None,
    ) -> UpsertResult:
        """Insert or replace a batch of records.

        The whole batch is validated before the first mutation, so a rejected
        batch leaves the collection unchanged.
        """
        if payloads is None:
            payloads = [None] * len(ids)
        if not len(ids) == len(vectors) == len(payloads):
            raise ArityMismatchError(
                f"ids, vectors and payloads must have equal length, "
                f"got {len(ids)}, {len(vectors)}, {len(payloads)}"
            )

        checked = [self._check_vector(vector, position) for position, vector in enumerate(vectors)]
        for record_id in ids:
            _check_id(record_id)

        required = len(self.index) + len(ids)
        if required > self.index.max_elements:
            raise CapacityExceededError(self.index.max_elements, required)

        result = UpsertResult()
        for record_id, raw, vec, payload in zip(ids, vectors, checked, payloads):
            node = self.index.insert(vec)
            previous = self._node_of.get(record_id)
            if previous is not None:
                self.index.mark_deleted(previous)
                result.replaced += 1
            else:
                result.inserted += 1
            self._node_of[record_id] = node
            self._id_of_node.append(record_id)
            self._records[record_id] = VectorRecord(id=record_id, vector=[float(x) for x in raw], payload=payload)

        logger.info(
            "Upserted into %s: inserted=%d replaced=%d nodes=%d",
            self.name,
            result.inserted,
            result.replaced,
            len(self.index),
        )
        return result

    def search(
        self,
        query: Sequence[float],
        top_k: int,
        ef: Optional[int] = None,
    ) -> list[tuple[int, float]]:
        """Return up to ``top_k`` ``(id, distance)`` pairs, closest first."""
        q = self._check_vector(query)
        logger.debug("Search %s: top_k=%d ef=%s", self.name, top_k, ef)
        hits = self.index.search_knn(q, top_k, ef=ef)
        return [(self._id_of_node[node], dist) for node, dist in hits]

    def fetch(self, ids: Sequence[int]) -> list[VectorRecord]:
        return [self._records[record_id] for record_id in ids if record_id in self._records]

    def info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "dim": self.dim,
            "config": self.config.to_dict(),
            "count": len(self._records),
            "nodes": len(self.index),
            "max_layer": self.index.max_layer,
        }

    def _check_vector(self, vector: Sequence[float], position: int | None = None) -> np.ndarray:
        try:
            vec = np.asarray(vector, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise InvalidVectorError(f"Vector is not numeric: {exc}") from exc
        if vec.ndim != 1 or vec.shape[0] != self.dim:
            raise DimensionMismatchError(expected=self.dim, actual=int(vec.size), position=position)
        if not np.all(np.isfinite(vec)):
            raise InvalidVectorError("Vector components must be finite numbers")
        return vec


def _check_id(record_id: Any) -> None:
    if isinstance(record_id, bool) or not isinstance(record_id, int):
        raise InvalidVectorError(f"Record id must be an integer, got {record_id!r}")
    if not 0 <= record_id <= MAX_RECORD_ID:
        raise InvalidVectorError(f"Record id out of u64 range: {record_id}")
