from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from vecdb.config import settings
from vecdb.vector.base import CollectionConfig

# Keys accepted inside a nested "hnsw" block, mapped to flat config fields.
_HNSW_ALIASES = {
    "max_nb_connection": "max_neighbors_per_node",
    "m": "max_neighbors_per_node",
    "ef_construction": "search_breadth",
    "ef_search": "ef_search",
    "max_elements": "max_elements",
}


class CollectionConfigPayload(BaseModel):
    distance: str = "l2"
    max_neighbors_per_node: int = Field(default_factory=lambda: settings.default_max_neighbors)
    search_breadth: int = Field(default_factory=lambda: settings.default_search_breadth)
    max_elements: int = Field(default_factory=lambda: settings.default_max_elements)
    ef_search: Optional[int] = None
    seed: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_hnsw_block(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "hnsw" not in data:
            return data
        flat = {k: v for k, v in data.items() if k != "hnsw"}
        hnsw = data.get("hnsw") or {}
        if isinstance(hnsw, dict):
            for key, value in hnsw.items():
                target = _HNSW_ALIASES.get(key)
                if target is not None:
                    flat.setdefault(target, value)
        return flat

    def to_config(self) -> CollectionConfig:
        return CollectionConfig(
            distance=self.distance,
            max_neighbors_per_node=self.max_neighbors_per_node,
            search_breadth=self.search_breadth,
            max_elements=self.max_elements,
            ef_search=self.ef_search,
            seed=self.seed,
        )


class CreateCollectionRequest(BaseModel):
    name: str
    dim: int
    config: CollectionConfigPayload = Field(default_factory=CollectionConfigPayload)

    @model_validator(mode="before")
    @classmethod
    def accept_top_level_index_fields(cls, data: Any) -> Any:
        # {"name", "dim", "metric", "hnsw": {...}} without a "config" block.
        if not isinstance(data, dict) or "config" in data:
            return data
        config: Dict[str, Any] = {}
        if "metric" in data:
            config["distance"] = data["metric"]
        if "distance" in data:
            config["distance"] = data["distance"]
        if "hnsw" in data:
            config["hnsw"] = data["hnsw"]
        if not config:
            return data
        rest = {k: v for k, v in data.items() if k not in ("metric", "distance", "hnsw")}
        return {**rest, "config": config}


class UpsertRequest(BaseModel):
    ids: List[int]
    vectors: List[List[float]]
    payloads: Optional[List[Any]] = None


class SearchRequest(BaseModel):
    query: List[float]
    top_k: int = 10
    ef: Optional[int] = None


class FetchRequest(BaseModel):
    ids: List[int]


class UpsertResponse(BaseModel):
    status: str = "ok"
    inserted: int
    replaced: int


class RecordResponse(BaseModel):
    id: int
    vector: List[float]
    payload: Any = None


class CollectionInfoResponse(BaseModel):
    name: str
    dim: int
    config: Dict[str, Any]
    count: int
    nodes: int
    max_layer: int
