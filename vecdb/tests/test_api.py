import pytest
from fastapi.testclient import TestClient

from vecdb.api.deps import get_registry
from vecdb.main import app
from vecdb.vector.registry import CollectionRegistry


@pytest.fixture
def client():
    registry = CollectionRegistry(lock_timeout=1.0)
    app.dependency_overrides[get_registry] = lambda: registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _create_docs(client, **config):
    body = {"name": "docs", "dim": 3, "config": {"distance": "l2", **config}}
    response = client.post("/collections", json=body)
    assert response.status_code == 200
    return response


def test_healthcheck(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_list(client):
    assert client.get("/collections").json() == []
    assert _create_docs(client).json() == {"status": "created", "name": "docs"}
    assert client.get("/collections").json() == ["docs"]


def test_duplicate_create_conflicts(client):
    _create_docs(client)
    response = client.post("/collections", json={"name": "docs", "dim": 3, "config": {"distance": "l2"}})
    assert response.status_code == 409


def test_invalid_config_is_bad_request(client):
    response = client.post("/collections", json={"name": "x", "dim": 3, "config": {"distance": "manhattan"}})
    assert response.status_code == 400
    assert "Unsupported distance" in response.json()["detail"]

    response = client.post("/collections", json={"name": "x", "dim": 0, "config": {"distance": "l2"}})
    assert response.status_code == 400

    response = client.post("/collections", json={"name": "x", "dim": 3, "config": {"max_neighbors_per_node": 1}})
    assert response.status_code == 400


def test_malformed_body_is_unprocessable(client):
    response = client.post("/collections", json={"name": "x"})
    assert response.status_code == 422


def test_upsert_and_search_docs(client):
    _create_docs(client)
    response = client.post(
        "/collections/docs/upsert",
        json={
            "ids": [1, 2, 3],
            "vectors": [[0, 0, 0], [1, 0, 0], [0, 5, 0]],
            "payloads": [{"name": "a"}, {"name": "b"}, {"name": "c"}],
        },
    )
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "inserted": 3, "replaced": 0}

    response = client.post("/collections/docs/search", json={"query": [0, 0, 0], "top_k": 2})
    assert response.status_code == 200
    assert response.json() == [[1, 0.0], [2, 1.0]]


def test_missing_collection_is_not_found(client):
    assert client.post("/collections/nope/upsert", json={"ids": [], "vectors": []}).status_code == 404
    assert client.post("/collections/nope/search", json={"query": [1.0], "top_k": 1}).status_code == 404
    assert client.get("/collections/nope").status_code == 404
    assert client.delete("/collections/nope").status_code == 404


def test_dimension_and_arity_errors(client):
    _create_docs(client)
    response = client.post("/collections/docs/upsert", json={"ids": [1], "vectors": [[1, 2]], "payloads": [None]})
    assert response.status_code == 400
    assert "dimension mismatch" in response.json()["detail"]

    response = client.post("/collections/docs/upsert", json={"ids": [1, 2], "vectors": [[1, 2, 3]]})
    assert response.status_code == 400

    response = client.post("/collections/docs/search", json={"query": [1, 2], "top_k": 1})
    assert response.status_code == 400

    assert client.get("/collections/docs").json()["count"] == 0


def test_capacity_exceeded(client):
    _create_docs(client, max_elements=2)
    ok = client.post("/collections/docs/upsert", json={"ids": [1, 2], "vectors": [[0, 0, 0], [1, 1, 1]]})
    assert ok.status_code == 200
    full = client.post("/collections/docs/upsert", json={"ids": [3], "vectors": [[2, 2, 2]]})
    assert full.status_code == 507
    assert client.get("/collections/docs").json()["count"] == 2


def test_fetch_returns_payload_verbatim(client):
    _create_docs(client)
    payload = {"tags": ["x", "y"], "score": 0.5, "nested": {"ok": True}}
    client.post("/collections/docs/upsert", json={"ids": [9], "vectors": [[1, 2, 3]], "payloads": [payload]})
    response = client.post("/collections/docs/fetch", json={"ids": [9, 10]})
    assert response.status_code == 200
    assert response.json() == [{"id": 9, "vector": [1.0, 2.0, 3.0], "payload": payload}]


def test_reupsert_replaces(client):
    _create_docs(client)
    client.post("/collections/docs/upsert", json={"ids": [1], "vectors": [[0, 0, 0]]})
    response = client.post("/collections/docs/upsert", json={"ids": [1], "vectors": [[3, 3, 3]]})
    assert response.json() == {"status": "ok", "inserted": 0, "replaced": 1}
    hits = client.post("/collections/docs/search", json={"query": [3, 3, 3], "top_k": 5}).json()
    assert hits == [[1, 0.0]]


def test_nested_hnsw_config_block(client):
    body = {
        "name": "legacy",
        "dim": 2,
        "config": {"distance": "cosine", "hnsw": {"max_nb_connection": 12, "ef_search": 40, "max_elements": 100}},
    }
    assert client.post("/collections", json=body).status_code == 200
    config = client.get("/collections/legacy").json()["config"]
    assert config["distance"] == "cosine"
    assert config["max_neighbors_per_node"] == 12
    assert config["ef_search"] == 40
    assert config["max_elements"] == 100


def test_top_level_metric_and_hnsw_fields(client):
    body = {
        "name": "my_vectors",
        "dim": 3,
        "metric": "cosine",
        "hnsw": {"m": 16, "ef_construction": 200, "ef_search": 50},
    }
    assert client.post("/collections", json=body).status_code == 200
    config = client.get("/collections/my_vectors").json()["config"]
    assert config["search_breadth"] == 200
    assert config["ef_search"] == 50

    client.post(
        "/collections/my_vectors/upsert",
        json={
            "ids": [1, 2, 3],
            "vectors": [[0.1, 0.2, 0.3], [0.2, 0.1, 0.9], [0.9, 0.1, 0.3]],
            "payloads": [{"name": "vec1"}, {"name": "vec2"}, {"name": "vec3"}],
        },
    )
    hits = client.post("/collections/my_vectors/search", json={"query": [0.1, 0.2, 0.25], "top_k": 2}).json()
    assert [h[0] for h in hits] == [1, 2]


def test_delete_collection(client):
    _create_docs(client)
    assert client.delete("/collections/docs").json() == {"status": "deleted", "name": "docs"}
    assert client.get("/collections").json() == []


def test_search_with_large_components(client):
    client.post("/collections", json={"name": "big", "dim": 2, "config": {"distance": "l2"}})
    response = client.post("/collections/big/upsert", json={"ids": [1], "vectors": [[1e20, 0.0]]})
    assert response.status_code == 200

    response = client.post("/collections/big/search", json={"query": [-1e20, 0.0], "top_k": 1})
    assert response.status_code == 200
    [[record_id, dist]] = response.json()
    assert record_id == 1
    assert dist == pytest.approx(4e40, rel=1e-6)


def test_cosine_search_with_large_components(client):
    client.post("/collections", json={"name": "bigcos", "dim": 2, "config": {"distance": "cosine"}})
    client.post("/collections/bigcos/upsert", json={"ids": [1, 2], "vectors": [[1e20, -1e20], [1e20, 1e20]]})
    hits = client.post("/collections/bigcos/search", json={"query": [1e20, 1e20], "top_k": 2}).json()
    assert [h[0] for h in hits] == [2, 1]
    assert hits[0][1] == pytest.approx(0.0, abs=1e-6)
    assert hits[1][1] == pytest.approx(1.0)
