from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List

from fastapi import APIRouter, Depends, HTTPException

from vecdb.api.deps import get_registry
from vecdb.models import (
    CollectionInfoResponse,
    CreateCollectionRequest,
    FetchRequest,
    RecordResponse,
    SearchRequest,
    UpsertRequest,
    UpsertResponse,
)
from vecdb.vector.errors import (
    ArityMismatchError,
    CapacityExceededError,
    CollectionExistsError,
    CollectionNotFoundError,
    DimensionMismatchError,
    InvalidConfigError,
    InvalidVectorError,
    LockTimeoutError,
    VectorDBError,
)
from vecdb.vector.registry import CollectionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/collections", tags=["collections"])

_STATUS_BY_ERROR = (
    (CollectionNotFoundError, 404),
    (CollectionExistsError, 409),
    (DimensionMismatchError, 400),
    (ArityMismatchError, 400),
    (InvalidVectorError, 400),
    (InvalidConfigError, 400),
    (CapacityExceededError, 507),
    (LockTimeoutError, 503),
)


def status_for(exc: VectorDBError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


@contextmanager
def core_errors(action: str) -> Iterator[None]:
    try:
        yield
    except VectorDBError as exc:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.warning("%s failed: %s", action, exc)
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("%s failed unexpectedly", action)
        raise HTTPException(status_code=500, detail=f"Failed to {action}: {exc}") from exc


@router.get("")
def list_collections(registry: CollectionRegistry = Depends(get_registry)) -> List[str]:
    return registry.list()


@router.post("")
def create_collection(payload: CreateCollectionRequest, registry: CollectionRegistry = Depends(get_registry)):
    with core_errors("create collection"):
        registry.create(payload.name, payload.config.to_config(), payload.dim)
    return {"status": "created", "name": payload.name}


@router.get("/{name}", response_model=CollectionInfoResponse)
def get_collection(name: str, registry: CollectionRegistry = Depends(get_registry)):
    with core_errors("describe collection"):
        with registry.get_for_read(name) as collection:
            return collection.info()


@router.delete("/{name}")
def delete_collection(name: str, registry: CollectionRegistry = Depends(get_registry)):
    with core_errors("delete collection"):
        registry.delete(name)
    return {"status": "deleted", "name": name}


@router.post("/{name}/upsert", response_model=UpsertResponse)
def upsert_vectors(name: str, payload: UpsertRequest, registry: CollectionRegistry = Depends(get_registry)):
    with core_errors("upsert vectors"):
        with registry.get_for_write(name) as collection:
            result = collection.upsert(payload.ids, payload.vectors, payload.payloads)
    return UpsertResponse(inserted=result.inserted, replaced=result.replaced)


@router.post("/{name}/search")
def search_vectors(name: str, payload: SearchRequest, registry: CollectionRegistry = Depends(get_registry)):
    with core_errors("search vectors"):
        with registry.get_for_read(name) as collection:
            hits = collection.search(payload.query, payload.top_k, ef=payload.ef)
    return [[record_id, distance] for record_id, distance in hits]


@router.post("/{name}/fetch", response_model=List[RecordResponse])
def fetch_vectors(name: str, payload: FetchRequest, registry: CollectionRegistry = Depends(get_registry)):
    with core_errors("fetch vectors"):
        with registry.get_for_read(name) as collection:
            records = collection.fetch(payload.ids)
    return [RecordResponse(id=r.id, vector=r.vector, payload=r.payload) for r in records]
