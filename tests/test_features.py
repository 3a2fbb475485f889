"""Tests for feature extraction.

Covers each feature group (favorites, purchases, rejections, metadata
normalization) and the zero-defaults for products with no data.
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from smartbuy.recommender.features import (
    MODEL_FEATURE_NAMES,
    FeatureVector,
    extract_features_for_product,
    extract_features_for_products,
    to_model_array,
)
from smartbuy.recommender.store import Product, PurchaseRecord, RecordStore, Rejection

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


def test_equal_prices_give_zero_price_score(store: RecordStore) -> None:
    """Identical prices cannot be normalized, so every candidate gets 0."""
    for pid in ("p1", "p2", "p3"):
        store.add_product(Product(product_id=pid, price=5.0))

    features = extract_features_for_products(store, ["p1", "p2", "p3"], "u1", now=NOW)

    assert [features[pid].price_score for pid in ("p1", "p2", "p3")] == [0.0, 0.0, 0.0]


def test_price_score_prefers_cheapest(store: RecordStore) -> None:
    store.add_product(Product(product_id="p1", price=1.0))
    store.add_product(Product(product_id="p2", price=3.0))
    store.add_product(Product(product_id="p3", price=5.0))

    features = extract_features_for_products(store, ["p1", "p2", "p3"], "u1", now=NOW)

    assert features["p1"].price_score == pytest.approx(1.0)
    assert features["p2"].price_score == pytest.approx(0.5)
    assert features["p3"].price_score == pytest.approx(0.0)


def test_category_popularity_over_candidates(store: RecordStore) -> None:
    store.add_product(Product(product_id="p1", category="dairy"))
    store.add_product(Product(product_id="p2", category="dairy"))
    store.add_product(Product(product_id="p3", category="bakery"))

    features = extract_features_for_products(store, ["p1", "p2", "p3"], "u1", now=NOW)

    assert features["p1"].category_popularity == 1.0
    assert features["p2"].category_popularity == 1.0
    assert features["p3"].category_popularity == 0.0


def test_favorite_flag(store: RecordStore) -> None:
    store.add_favorite("u1", "p1")

    features = extract_features_for_products(store, ["p1", "p2"], "u1", now=NOW)

    assert features["p1"].is_favorite == 1.0
    assert features["p2"].is_favorite == 0.0


def test_purchase_history_features(store: RecordStore) -> None:
    store.add_purchase(PurchaseRecord("u1", "p1", NOW - timedelta(days=10)))
    store.add_purchase(PurchaseRecord("u1", "p1", NOW - timedelta(days=5)))
    store.add_purchase(PurchaseRecord("u1", "p2", NOW - timedelta(days=40)))

    features = extract_features_for_products(store, ["p1", "p2", "p3"], "u1", now=NOW)

    assert features["p1"].times_purchased == 2
    assert features["p1"].purchased_before == 1.0
    assert features["p1"].recently_purchased == 1.0
    assert features["p2"].purchased_before == 1.0
    assert features["p2"].recently_purchased == 0.0
    assert features["p3"].purchased_before == 0.0


def test_household_popularity_normalized_by_max(store: RecordStore) -> None:
    store.add_purchase(PurchaseRecord("u2", "p1", NOW, household_id="h1", quantity=4))
    store.add_purchase(PurchaseRecord("u2", "p2", NOW, household_id="h1", quantity=2))
    # Other households do not count
    store.add_purchase(PurchaseRecord("u9", "p2", NOW, household_id="h9", quantity=50))

    features = extract_features_for_products(store, ["p1", "p2"], "u1", household_id="h1", now=NOW)

    assert features["p1"].household_popularity == pytest.approx(1.0)
    assert features["p2"].household_popularity == pytest.approx(0.5)
    # Household purchases count as purchase history for the actor
    assert features["p1"].times_purchased == 4


def test_rejection_counts(store: RecordStore) -> None:
    store.add_rejection(Rejection("p1", "u1", NOW, household_id="h1"))
    store.add_rejection(Rejection("p1", "u2", NOW, household_id="h1"))

    features = extract_features_for_products(store, ["p1"], "u1", household_id="h1", now=NOW)

    assert features["p1"].rejected_by_user_count == 1
    assert features["p1"].rejected_by_household_count == 2


def test_unknown_product_gets_zero_features(store: RecordStore) -> None:
    vector = extract_features_for_product(store, "missing", "u1", now=NOW)

    assert vector.bias == 1.0
    assert all(value == 0.0 for name, value in vector.to_dict().items() if name != "bias")


def test_empty_candidate_set(store: RecordStore) -> None:
    assert extract_features_for_products(store, [], "u1") == {}


def test_candidate_order_preserved_and_deduplicated(store: RecordStore) -> None:
    features = extract_features_for_products(store, ["p3", "p1", "p3", "p2"], "u1", now=NOW)
    assert list(features) == ["p3", "p1", "p2"]


def test_model_vector_order_and_bias() -> None:
    vector = FeatureVector(is_favorite=1.0, rejected_by_household_count=2.0, price_score=0.7)
    x = vector.model_vector()

    assert len(x) == len(MODEL_FEATURE_NAMES)
    assert x[0] == 1.0
    assert x[MODEL_FEATURE_NAMES.index("is_favorite")] == 1.0
    assert x[MODEL_FEATURE_NAMES.index("rejected_by_household_count")] == 2.0
    # price_score is carried but not weighted
    assert 0.7 not in x


def test_to_model_array_forces_bias() -> None:
    x = to_model_array({"bias": 0.0, "purchased_before": 1.0})
    np.testing.assert_array_equal(x, [1.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0])


def test_from_mapping_ignores_unknown_and_missing() -> None:
    vector = FeatureVector.from_mapping({"is_favorite": 1, "unknown": 5, "times_purchased": None})
    assert vector.is_favorite == 1.0
    assert vector.times_purchased == 0.0
