"""
Hierarchical navigable small-world (HNSW) graph index.

Nodes are dense integer ids assigned in insertion order. Every node lives on
layers ``0..level`` where ``level`` is drawn from an exponential distribution,
so upper layers are sparse and act as an express lane for greedy descent,
while layer 0 holds every node.

Reference:
    Malkov, Y. A., & Yashunin, D. A. (2018).
    "Efficient and robust approximate nearest neighbor search using
    Hierarchical Navigable Small World graphs."
    https://arxiv.org/abs/1603.09320

The index is not thread safe on its own; callers serialise writers against
readers (see ``vecdb.vector.collection``).
"""

from __future__ import annotations

import heapq
import logging
import math
import random
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from vecdb.vector.distance import Metric, VectorMetric, get_metric
from vecdb.vector.errors import CapacityExceededError, DimensionMismatchError, InvalidConfigError

logger = logging.getLogger(__name__)

# Hard cap on the number of layers a node can be drawn into.
MAX_LAYERS = 16

_INITIAL_ROWS = 64

# (distance, node id); tuple order gives the deterministic tie-break.
Candidate = Tuple[float, int]


class HNSWIndex:
    """Approximate k-NN index over fixed-dimension float32 vectors.

    Parameters:
        dim: vector length accepted by ``insert`` and ``search_knn``.
        metric: ``"l2"`` or ``"cosine"``.
        max_neighbors: M, the per-layer degree bound (2*M on layer 0).
        ef_construction: beam width used while linking a new node.
        ef_search: default beam width for queries.
        max_elements: hard node capacity.
        seed: seed for level sampling.
    """

    def __init__(
        self,
        dim: int,
        metric: str | VectorMetric = VectorMetric.L2,
        *,
        max_neighbors: int = 16,
        ef_construction: int = 16,
        ef_search: int = 16,
        max_elements: int = 10_000,
        seed: Optional[int] = None,
    ) -> None:
        if dim < 1:
            raise InvalidConfigError(f"dim must be >= 1, got {dim}")
        if max_neighbors < 2:
            raise InvalidConfigError(f"max_neighbors_per_node must be >= 2, got {max_neighbors}")
        if ef_construction < 1:
            raise InvalidConfigError(f"search_breadth must be >= 1, got {ef_construction}")
        if ef_search < 1:
            raise InvalidConfigError(f"ef_search must be >= 1, got {ef_search}")
        if max_elements < 1:
            raise InvalidConfigError(f"max_elements must be >= 1, got {max_elements}")

        self.dim = dim
        self.metric: Metric = get_metric(metric)
        self.max_neighbors = max_neighbors
        self.max_neighbors0 = max_neighbors * 2
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self.max_elements = max_elements
        self._ml = 1.0 / math.log(max_neighbors)
        self._rng = random.Random(seed)

        self._vectors = np.zeros((min(_INITIAL_ROWS, max_elements), dim), dtype=np.float32)
        self._levels: List[int] = []
        # _links[node][layer] -> neighbour ids on that layer
        self._links: List[List[List[int]]] = []
        self._deleted: Set[int] = set()
        self._entry_point: Optional[int] = None
        self._max_layer = -1

    def __len__(self) -> int:
        return len(self._levels)

    @property
    def live_count(self) -> int:
        return len(self._levels) - len(self._deleted)

    @property
    def entry_point(self) -> Optional[int]:
        return self._entry_point

    @property
    def max_layer(self) -> int:
        return self._max_layer

    def level_of(self, node: int) -> int:
        return self._levels[node]

    def neighbors(self, node: int, layer: int) -> List[int]:
        links = self._links[node]
        if layer >= len(links):
            return []
        return list(links[layer])

    def vector(self, node: int) -> np.ndarray:
        return self._vectors[node].copy()

    def mark_deleted(self, node: int) -> None:
        """Hide ``node`` from search results; it stays in the graph for routing."""
        if not 0 <= node < len(self._levels):
            raise IndexError(f"Unknown node id {node}")
        self._deleted.add(node)

    # ------------------------------------------------------------------
    # insertion
    # ------------------------------------------------------------------

    def insert(self, vector: Sequence[float] | np.ndarray) -> int:
        """Add ``vector`` to the graph and return its node id."""
        vec = self._as_vector(vector)
        node = len(self._levels)
        if node >= self.max_elements:
            raise CapacityExceededError(self.max_elements, node + 1)

        level = self._random_level()
        self._store_vector(node, vec)
        self._levels.append(level)
        self._links.append([[] for _ in range(level + 1)])

        if self._entry_point is None:
            self._entry_point = node
            self._max_layer = level
            return node

        ep = self._entry_point
        ep_dist = self.metric(vec, self._vectors[ep])
        for layer in range(self._max_layer, level, -1):
            ep, ep_dist = self._greedy_closest(vec, ep, ep_dist, layer)

        entry_points: List[Candidate] = [(ep_dist, ep)]
        for layer in range(min(level, self._max_layer), -1, -1):
            found = self._search_layer(vec, entry_points, self.ef_construction, layer, include_deleted=True)
            selected = self._select_neighbors(vec, found, self.max_neighbors)
            self._connect(node, selected, layer)
            entry_points = found

        if level > self._max_layer:
            logger.debug("Node %d becomes entry point at layer %d", node, level)
            self._entry_point = node
            self._max_layer = level
        return node

    def _random_level(self) -> int:
        # 1 - random() lies in (0, 1], so log() is always defined.
        level = int(-math.log(1.0 - self._rng.random()) * self._ml)
        return min(level, MAX_LAYERS - 1)

    def _store_vector(self, node: int, vec: np.ndarray) -> None:
        rows = self._vectors.shape[0]
        if node >= rows:
            grown = np.zeros((min(rows * 2, self.max_elements), self.dim), dtype=np.float32)
            grown[:rows] = self._vectors
            self._vectors = grown
        self._vectors[node] = vec

    def _connect(self, node: int, selected: List[int], layer: int) -> None:
        bound = self.max_neighbors0 if layer == 0 else self.max_neighbors
        self._links[node][layer] = list(selected)
        for other in selected:
            links = self._links[other][layer]
            if len(links) < bound:
                links.append(node)
                continue
            # Over the bound: re-run the heuristic over the old links plus the new one.
            pool = links + [node]
            dists = self._distances(self._vectors[other], pool)
            ranked = sorted(zip((float(d) for d in dists), pool))
            self._links[other][layer] = self._select_neighbors(self._vectors[other], ranked, bound)

    def _select_neighbors(self, base: np.ndarray, candidates: List[Candidate], m: int) -> List[int]:
        """Pick up to ``m`` diverse neighbours from ``candidates`` (sorted ascending).

        A candidate is kept only if it is closer to ``base`` than to every
        neighbour already kept, which spreads edges in different directions.
        """
        if len(candidates) <= m:
            return [node for _, node in candidates]

        selected: List[int] = []
        for dist, node in candidates:
            if len(selected) >= m:
                break
            if selected:
                to_selected = self._distances(self._vectors[node], selected)
                if bool(np.any(to_selected < dist)):
                    continue
            selected.append(node)
        return selected

    # ------------------------------------------------------------------
    # search
    # ------------------------------------------------------------------

    def search_knn(
        self,
        query: Sequence[float] | np.ndarray,
        top_k: int,
        ef: Optional[int] = None,
    ) -> List[Tuple[int, float]]:
        """Return up to ``top_k`` ``(node, distance)`` pairs closest to ``query``.

        Results are sorted by distance, ties by node id. ``ef`` defaults to
        ``ef_search`` and is raised to ``top_k`` when smaller.
        """
        q = self._as_vector(query)
        if top_k <= 0 or self._entry_point is None:
            return []
        ef = max(ef or self.ef_search, top_k)

        ep = self._entry_point
        ep_dist = self.metric(q, self._vectors[ep])
        for layer in range(self._max_layer, 0, -1):
            ep, ep_dist = self._greedy_closest(q, ep, ep_dist, layer)

        found = self._search_layer(q, [(ep_dist, ep)], ef, 0, include_deleted=False)
        return [(node, dist) for dist, node in found[:top_k]]

    def _greedy_closest(self, query: np.ndarray, ep: int, ep_dist: float, layer: int) -> Candidate:
        """Walk single-path towards ``query`` on ``layer`` until no neighbour improves."""
        improved = True
        while improved:
            improved = False
            links = self._links[ep][layer]
            if not links:
                break
            dists = self._distances(query, links)
            best = int(np.argmin(dists))
            if float(dists[best]) < ep_dist:
                ep, ep_dist = links[best], float(dists[best])
                improved = True
        return ep, ep_dist

    def _search_layer(
        self,
        query: np.ndarray,
        entry_points: Iterable[Candidate],
        ef: int,
        layer: int,
        *,
        include_deleted: bool,
    ) -> List[Candidate]:
        """Best-first beam search on one layer; returns up to ``ef`` sorted candidates.

        Tombstoned nodes are always expanded but only enter the result set when
        ``include_deleted`` is true.
        """
        candidates: List[Candidate] = []
        # Max-heap on (distance, id) via negation; top is the current worst.
        results: List[Tuple[float, int]] = []
        visited: Set[int] = set()

        for dist, node in entry_points:
            if node in visited:
                continue
            visited.add(node)
            heapq.heappush(candidates, (dist, node))
            if include_deleted or node not in self._deleted:
                heapq.heappush(results, (-dist, -node))
                if len(results) > ef:
                    heapq.heappop(results)

        while candidates:
            dist, node = heapq.heappop(candidates)
            if len(results) >= ef and (dist, node) > (-results[0][0], -results[0][1]):
                break

            fresh = [n for n in self._links[node][layer] if n not in visited]
            if not fresh:
                continue
            visited.update(fresh)

            for other, d in zip(fresh, self._distances(query, fresh)):
                d = float(d)
                if len(results) < ef or (d, other) < (-results[0][0], -results[0][1]):
                    heapq.heappush(candidates, (d, other))
                    if include_deleted or other not in self._deleted:
                        heapq.heappush(results, (-d, -other))
                        if len(results) > ef:
                            heapq.heappop(results)

        return sorted((-d, -n) for d, n in results)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _distances(self, query: np.ndarray, nodes: List[int]) -> np.ndarray:
        return self.metric.many(query, self._vectors[nodes])

    def _as_vector(self, vector: Sequence[float] | np.ndarray) -> np.ndarray:
        vec = np.asarray(vector, dtype=np.float32)
        if vec.ndim != 1:
            raise DimensionMismatchError(expected=self.dim, actual=int(vec.size))
        if vec.shape[0] != self.dim:
            raise DimensionMismatchError(expected=self.dim, actual=vec.shape[0])
        return vec
