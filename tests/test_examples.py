"""Tests for the training-example recorder."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from smartbuy.exceptions import MissingDataError
from smartbuy.recommender.examples import (
    NEGATIVE_LABEL,
    POSITIVE_LABEL,
    record_purchase_example,
    record_rejection,
    undo_rejection,
)
from smartbuy.recommender.features import FeatureVector
from smartbuy.recommender.store import RecordStore
from smartbuy.recommender.weights import WeightStore

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


@pytest.fixture
def weight_store() -> WeightStore:
    return WeightStore()


def test_rejection_writes_negative_example_and_updates_weights(store, weight_store) -> None:
    store.add_favorite("u1", "p1")

    rejection = record_rejection(
        store, weight_store, "u1", "p1", household_id="h1", list_id="l1", now=NOW
    )

    [example] = store.list_training_examples()
    assert example.label == NEGATIVE_LABEL
    assert example.list_id == "l1"
    assert example.household_id == "h1"
    assert example.timestamp == rejection.created_at
    # The snapshot already counts the rejection being recorded
    assert example.features["is_favorite"] == 1.0
    assert example.features["rejected_by_user_count"] == 1.0
    assert example.features["rejected_by_household_count"] == 1.0
    assert weight_store.version == 1


def test_repeated_rejection_is_a_noop(store, weight_store) -> None:
    first = record_rejection(store, weight_store, "u1", "p1", household_id="h1", now=NOW)
    second = record_rejection(
        store, weight_store, "u1", "p1", household_id="h1", now=NOW + timedelta(hours=1)
    )

    assert second == first
    assert len(store.list_training_examples()) == 1
    assert weight_store.version == 1


def test_same_product_rejected_by_two_members(store, weight_store) -> None:
    record_rejection(store, weight_store, "u1", "p1", household_id="h1", now=NOW)
    record_rejection(store, weight_store, "u2", "p1", household_id="h1", now=NOW)

    assert len(store.list_rejections("u1")) == 1
    assert len(store.list_rejections("u2")) == 1
    assert len(store.list_training_examples()) == 2


def test_undo_removes_rejection_and_example(store, weight_store) -> None:
    record_rejection(store, weight_store, "u1", "p1", household_id="h1", now=NOW)
    record_rejection(store, weight_store, "u1", "p2", household_id="h1", now=NOW)

    undone = undo_rejection(store, "u1", "p1")

    assert undone.product_id == "p1"
    assert [r.product_id for r in store.list_rejections("u1")] == ["p2"]
    assert [e.product_id for e in store.list_training_examples()] == ["p2"]


def test_undo_unknown_rejection_raises(store) -> None:
    with pytest.raises(MissingDataError) as exc_info:
        undo_rejection(store, "u1", "p1")
    assert exc_info.value.status_code == 404


def test_purchase_example_is_positive(store) -> None:
    example = record_purchase_example(
        store, "u1", "p1", FeatureVector(purchased_before=1.0), household_id="h1", now=NOW
    )

    assert example.label == POSITIVE_LABEL
    assert store.list_training_examples() == [example]


def test_purchase_sampling(store) -> None:
    rng = random.Random(0)

    kept = [
        record_purchase_example(store, "u1", f"p{i}", FeatureVector(), sample_rate=0.0, rng=rng)
        for i in range(20)
    ]

    assert kept == [None] * 20
    assert store.list_training_examples() == []
