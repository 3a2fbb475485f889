"""Tests for error handling in the SmartBuy API.

Exceptions raised by the engine must reach clients as JSON bodies with
``error``, ``message`` and ``details`` and the exception's status code.
"""

import json
import logging

import pytest
from fastapi.testclient import TestClient

from smartbuy.api.dependencies import get_engine
from smartbuy.api.logging_config import JSONFormatter
from smartbuy.api.main import app
from smartbuy.exceptions import (
    ConcurrentWriteError,
    DegenerateTrainingError,
    MissingDataError,
    NormalizationError,
    SmartBuyException,
    StoreUnavailableError,
)
from smartbuy.recommender.engine import SuggestionEngine


class FailingEngine(SuggestionEngine):
    """Engine whose training step hits an unreadable store."""

    def train(self):
        raise StoreUnavailableError("data/weights.joblib", OSError("disk full"))


@pytest.fixture
def client():
    app.dependency_overrides[get_engine] = lambda: FailingEngine()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.parametrize(
    "exc, status_code",
    [
        (MissingDataError("Product", "p1"), 404),
        (DegenerateTrainingError(0), 422),
        (NormalizationError("price_score", 5.0), 422),
        (ConcurrentWriteError(1, 2), 409),
        (StoreUnavailableError("x", OSError("boom")), 503),
    ],
)
def test_exception_status_codes(exc: SmartBuyException, status_code: int) -> None:
    assert isinstance(exc, SmartBuyException)
    assert exc.status_code == status_code
    assert exc.message
    assert isinstance(exc.details, dict)


def test_store_unavailable_maps_to_503(client: TestClient) -> None:
    response = client.post("/model/train")

    assert response.status_code == 503
    data = response.json()
    assert data["error"] == "StoreUnavailableError"
    assert "disk full" in data["message"]
    assert data["details"]["error_type"] == "OSError"


def test_request_validation_error(client: TestClient) -> None:
    response = client.post("/suggestions/rank", json={"product_ids": ["p1"]})
    assert response.status_code == 422


def test_json_formatter_includes_extra_fields() -> None:
    record = logging.LogRecord(
        name="smartbuy.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Ranked %d products",
        args=(3,),
        exc_info=None,
    )
    record.household_id = "h1"

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "Ranked 3 products"
    assert data["level"] == "INFO"
    assert data["household_id"] == "h1"
