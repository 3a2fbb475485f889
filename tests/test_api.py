"""Tests for the FastAPI application endpoints.

Each test gets a fresh engine backed by a temporary data directory,
injected through FastAPI's dependency overrides.
"""

from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from smartbuy.api.dependencies import get_engine
from smartbuy.api.main import app
from smartbuy.api.metrics import metrics_service
from smartbuy.config import EngineConfig
from smartbuy.recommender.engine import SuggestionEngine
from smartbuy.recommender.store import Product
from smartbuy.recommender.weights import DEFAULT_WEIGHTS


@pytest.fixture
def engine(tmp_path: Path) -> SuggestionEngine:
    engine = SuggestionEngine.from_data_dir(EngineConfig(data_dir=str(tmp_path), random_state=0))
    for pid in ("milk", "bread", "eggs"):
        engine.store.add_product(Product(product_id=pid, name=pid.title()))
    return engine


@pytest.fixture
def client(engine: SuggestionEngine) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_engine] = lambda: engine
    metrics_service.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_ping_endpoint(client: TestClient) -> None:
    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_header(client: TestClient) -> None:
    response = client.get("/ping", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"

    assert client.get("/ping").headers.get("X-Request-ID")


def test_status_endpoint(client: TestClient) -> None:
    response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert data["weights_loaded"] is False
    assert data["weights_version"] == 0
    assert data["num_products"] == 3
    assert data["num_purchases"] == 0


def test_record_interaction(client: TestClient) -> None:
    response = client.post(
        "/interactions",
        json={
            "actor_id": "u1",
            "product_id": "milk",
            "action": "added",
            "household_id": "h1",
            "timestamp": "2024-03-01T10:00:00Z",
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "recorded"
    assert data["household_record"]["total_added"] == 1
    assert data["household_record"]["state"] == "tracked"
    assert client.get("/metrics").json()["interaction_count"] == 1


def test_record_purchase_with_metadata(client: TestClient, engine: SuggestionEngine) -> None:
    response = client.post(
        "/interactions",
        json={
            "actor_id": "u1",
            "product_id": "milk",
            "action": "purchased",
            "household_id": "h1",
            "metadata": {"price": 1.2, "store": "hypermart", "quantity": 2},
        },
    )

    assert response.status_code == 200
    assert engine.store.count_purchases() == 1
    assert len(engine.store.list_training_examples()) == 1


def test_unknown_action_returns_422(client: TestClient) -> None:
    response = client.post(
        "/interactions",
        json={"actor_id": "u1", "product_id": "milk", "action": "viewed"},
    )

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "InvalidInteractionError"
    assert "viewed" in data["message"]


def test_reject_list_and_undo(client: TestClient) -> None:
    response = client.post(
        "/rejections", json={"user_id": "u1", "product_id": "bread", "household_id": "h1"}
    )
    assert response.status_code == 201
    assert response.json()["rejected_by"] == "u1"

    listed = client.get("/rejections", params={"user_id": "u1"}).json()
    assert [r["product_id"] for r in listed] == ["bread"]

    response = client.delete("/rejections/bread", params={"user_id": "u1"})
    assert response.status_code == 200
    assert client.get("/rejections", params={"user_id": "u1"}).json() == []


def test_undo_unknown_rejection_returns_404(client: TestClient) -> None:
    response = client.delete("/rejections/bread", params={"user_id": "u1"})

    assert response.status_code == 404
    assert response.json()["error"] == "MissingDataError"


def test_rank_endpoint(client: TestClient, engine: SuggestionEngine) -> None:
    engine.weight_store.seed_defaults()
    engine.store.add_favorite("u1", "eggs")

    response = client.post(
        "/suggestions/rank", json={"user_id": "u1", "product_ids": ["milk", "eggs"]}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["weights_version"] == 1
    assert [s["product_id"] for s in data["suggestions"]] == ["eggs", "milk"]
    assert client.get("/metrics").json()["ranking_count"] == 1


def test_rank_without_weights_is_neutral(client: TestClient) -> None:
    response = client.post(
        "/suggestions/rank", json={"user_id": "u1", "product_ids": ["milk", "eggs"]}
    )

    data = response.json()
    assert [s["score"] for s in data["suggestions"]] == [0.5, 0.5]
    assert client.get("/metrics").json()["fallback_count"] == 1


def test_merged_suggestions(client: TestClient) -> None:
    client.post(
        "/interactions",
        json={"actor_id": "u1", "product_id": "milk", "action": "added", "household_id": "h1"},
    )

    response = client.post(
        "/suggestions",
        json={"user_id": "u1", "household_id": "h1", "product_ids": ["milk", "bread"], "limit": 5},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["suggestions"][0]["product_id"] == "milk"
    assert data["suggestions"][0]["household"]["frequency"] == 1


def test_household_endpoints(client: TestClient) -> None:
    for _ in range(2):
        client.post(
            "/interactions",
            json={"actor_id": "u1", "product_id": "milk", "action": "added", "household_id": "h1"},
        )

    frequent = client.get("/suggestions/household/h1").json()
    assert frequent["household_id"] == "h1"
    assert [s["product_id"] for s in frequent["suggestions"]] == ["milk"]

    due = client.get("/suggestions/household/h1/due-soon").json()
    assert due["suggestions"] == []

    patterns = client.get("/suggestions/household/h1/patterns").json()
    assert patterns["patterns"]["total_products"] == 1

    assert client.get("/suggestions/household/empty").json()["suggestions"] == []


def test_train_and_weights(client: TestClient, tmp_path: Path) -> None:
    assert client.get("/model/weights").status_code == 404

    response = client.post("/model/train")

    assert response.status_code == 200
    data = response.json()
    assert data["used_defaults"] is True
    assert data["weights"] == DEFAULT_WEIGHTS

    weights = client.get("/model/weights").json()
    assert weights["version"] == 1
    assert weights["weights"] == DEFAULT_WEIGHTS
    assert (tmp_path / "store_snapshot.joblib").exists()


@pytest.mark.parametrize("action", ["added", "purchased"])
def test_timestamp_without_offset_is_recorded(client: TestClient, action: str) -> None:
    payload = {"actor_id": "u1", "product_id": "milk", "action": action, "household_id": "h1"}

    first = client.post("/interactions", json={**payload, "timestamp": "2024-03-01T10:00:00Z"})
    second = client.post("/interactions", json={**payload, "timestamp": "2024-03-02T10:00:00"})

    assert first.status_code == 200
    assert second.status_code == 200
    record = second.json()["household_record"]
    assert record is not None
    if action == "added":
        assert record["total_added"] == 2
    else:
        assert record["total_purchased"] == 2
