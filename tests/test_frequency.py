"""Tests for household frequency tracking.

Covers the ring buffers, streaks, interval averaging, next-purchase
prediction and confidence, the household score, and the household queries.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from smartbuy.exceptions import InvalidInteractionError
from smartbuy.recommender.frequency import (
    BASE_CONFIDENCE,
    MAX_CONFIDENCE,
    MAX_PRICE_HISTORY,
    MAX_PURCHASE_INTERVALS,
    HouseholdFrequencyRecord,
    RecordState,
    RingBuffer,
    analyze_household_patterns,
    calculate_household_score,
    get_household_due_soon_products,
    get_household_frequent_products,
    shopping_frequency_label,
    time_of_day,
    update_household_frequency,
)
from smartbuy.recommender.store import Product, RecordStore

# A Monday
DAY0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def day(n: float) -> datetime:
    return DAY0 + timedelta(days=n)


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


def purchase(records, at, product_id="p1", household_id="h1", **metadata):
    return update_household_frequency(
        records, household_id, product_id, "purchased", "u1", metadata, now=at
    )


def add(records, at, product_id="p1", household_id="h1", user_id="u1"):
    return update_household_frequency(
        records, household_id, product_id, "added", user_id, now=at
    )


def test_ring_buffer_evicts_oldest() -> None:
    buffer = RingBuffer(3)
    assert [buffer.append(i) for i in range(5)] == [None, None, None, 0, 1]
    assert buffer.to_list() == [2, 3, 4]
    assert len(buffer) == 3


def test_ring_buffer_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        RingBuffer(0)


def test_two_purchases_ten_days_apart(store: RecordStore) -> None:
    purchase(store, day(0))
    record = purchase(store, day(10))

    assert record.purchase_intervals.to_list() == [10]
    assert record.average_interval == 10
    assert record.next_purchase_prediction == day(20)
    assert record.confidence == BASE_CONFIDENCE
    assert record.state is RecordState.PREDICTING


def test_no_prediction_before_second_purchase(store: RecordStore) -> None:
    add(store, day(0))
    record = purchase(store, day(1))

    assert record.total_purchased == 1
    assert record.next_purchase_prediction is None
    assert record.confidence == 0.0
    assert record.state is RecordState.TRACKED


def test_new_record_state() -> None:
    assert HouseholdFrequencyRecord("h1", "p1").state is RecordState.NEW


def test_interval_buffer_is_bounded(store: RecordStore) -> None:
    for i in range(MAX_PURCHASE_INTERVALS + 3):
        record = purchase(store, day(i * 2 if i < 5 else 10 + (i - 5) * 3))

    assert len(record.purchase_intervals) == MAX_PURCHASE_INTERVALS
    # Newest gaps are kept
    assert record.purchase_intervals[-1] == 3


def test_price_history_is_bounded_and_averaged(store: RecordStore) -> None:
    for i in range(MAX_PRICE_HISTORY + 5):
        record = purchase(store, day(i), price=float(i), store="hypermart")

    assert len(record.price_history) == MAX_PRICE_HISTORY
    prices = [entry.price for entry in record.price_history]
    assert prices == [float(i) for i in range(5, MAX_PRICE_HISTORY + 5)]
    assert record.average_price == pytest.approx(sum(prices) / len(prices))
    assert record.price_history[-1].store == "hypermart"


def test_purchase_without_price_keeps_history_empty(store: RecordStore) -> None:
    record = purchase(store, day(0), store="hypermart")
    assert len(record.price_history) == 0
    assert record.average_price == 0.0


def test_price_without_store_is_not_recorded(store: RecordStore) -> None:
    record = purchase(store, day(0), price=2.0)

    assert len(record.price_history) == 0
    assert record.average_price == 0.0
    assert record.total_purchased == 1

    record = purchase(store, day(3), price=3.0, store="corner-market")
    assert [(e.price, e.store) for e in record.price_history] == [(3.0, "corner-market")]
    assert record.average_price == pytest.approx(3.0)


def test_streak_resets_after_gap(store: RecordStore) -> None:
    add(store, day(0))
    add(store, day(3))
    record = add(store, day(6))
    assert record.household_streak == 3

    record = add(store, day(20))
    assert record.household_streak == 1
    assert record.longest_streak == 3
    assert record.longest_streak >= record.household_streak


def test_added_by_tracks_each_member(store: RecordStore) -> None:
    add(store, day(0), user_id="u1")
    add(store, day(1), user_id="u2")
    record = add(store, day(2), user_id="u1")

    counts = {entry.user_id: entry.count for entry in record.added_by}
    assert counts == {"u1": 2, "u2": 1}
    assert record.total_added == 3


def test_consistent_intervals_reach_max_confidence(store: RecordStore) -> None:
    for i in range(4):
        record = purchase(store, day(i * 7))

    assert record.purchase_intervals.to_list() == [7, 7, 7]
    assert record.confidence == MAX_CONFIDENCE
    assert record.patterns.shopping_frequency == "weekly"


def test_irregular_intervals_lower_confidence(store: RecordStore) -> None:
    for at in (0, 2, 14, 16):
        record = purchase(store, day(at))

    assert BASE_CONFIDENCE <= record.confidence < MAX_CONFIDENCE


def test_shopping_frequency_stays_default_without_intervals(store: RecordStore) -> None:
    record = add(store, day(0))
    assert record.patterns.shopping_frequency == "weekly"

    # One purchase has an average interval of 0 but no interval yet
    record = purchase(store, day(0))
    assert record.average_interval == 0
    assert record.patterns.shopping_frequency == "weekly"

    record = purchase(store, day(10))
    assert record.patterns.shopping_frequency == "bi-weekly"


@pytest.mark.parametrize(
    "interval, label",
    [(1, "daily"), (5, "weekly"), (7, "weekly"), (12, "bi-weekly"), (30, "monthly")],
)
def test_shopping_frequency_label(interval: float, label: str) -> None:
    assert shopping_frequency_label(interval) == label


@pytest.mark.parametrize(
    "hour, label",
    [(7, "morning"), (12, "afternoon"), (18, "evening"), (23, "night"), (3, "night")],
)
def test_time_of_day(hour: int, label: str) -> None:
    assert time_of_day(hour) == label


def test_weekday_patterns_use_sunday_as_zero(store: RecordStore) -> None:
    sunday = datetime(2024, 1, 7, 19, 0, tzinfo=timezone.utc)
    record = add(store, sunday)

    assert record.patterns.preferred_days == [0]
    assert record.patterns.preferred_time == "evening"


def test_fresh_record_score(store: RecordStore) -> None:
    record = add(store, day(0))

    # frequency 8 * 0.35 + recency 100 * 0.20 + streak 15 * 0.15 = 25.05
    assert record.household_score == 25
    assert calculate_household_score(record, day(0)) == 25


def test_score_is_clamped(store: RecordStore) -> None:
    for i in range(30):
        add(store, day(i))
    for i in range(4):
        record = purchase(store, day(30 + i * 7))

    score = calculate_household_score(record, record.next_purchase_prediction)
    assert 0 <= score <= 100


def test_similar_households_counted(store: RecordStore) -> None:
    for household in ("h2", "h3"):
        for i in range(3):
            add(store, day(i), household_id=household)
    add(store, day(0), household_id="h4")  # below the add threshold

    record = add(store, day(5), household_id="h1")

    assert record.similar_households == 2


def test_invalid_action_is_rejected(store: RecordStore) -> None:
    with pytest.raises(InvalidInteractionError):
        update_household_frequency(store, "h1", "p1", "rejected", "u1", now=day(0))
    assert store.get_frequency("h1", "p1") is None


def test_frequent_products_exclude_untracked(store: RecordStore) -> None:
    store.add_product(Product(product_id="p1", name="Milk"))
    store.add_product(Product(product_id="p2", name="Bread"))
    add(store, day(0), product_id="p1")

    suggestions = get_household_frequent_products(store, "h1", now=day(1))

    assert [s.product_id for s in suggestions] == ["p1"]
    assert suggestions[0].name == "Milk"
    assert suggestions[0].added_by == [{"user_id": "u1", "count": 1}]


def test_frequent_products_sorted_and_limited(store: RecordStore) -> None:
    for i in range(3):
        add(store, day(i), product_id="often")
    add(store, day(2), product_id="once")
    add(store, day(2), product_id="other")

    suggestions = get_household_frequent_products(store, "h1", limit=2, now=day(2))

    assert len(suggestions) == 2
    assert suggestions[0].product_id == "often"


def test_frequent_products_for_unknown_or_missing_household(store: RecordStore) -> None:
    assert get_household_frequent_products(store, "nobody") == []
    assert get_household_frequent_products(store, None) == []


def test_due_soon_products(store: RecordStore) -> None:
    purchase(store, day(0), product_id="milk")
    purchase(store, day(7), product_id="milk")  # next predicted at day 14
    purchase(store, day(0), product_id="rice")
    purchase(store, day(60), product_id="rice")  # next predicted at day 120
    add(store, day(7), product_id="salt")  # no prediction

    due = get_household_due_soon_products(store, "h1", within_days=7, now=day(12))

    assert [s.product_id for s in due] == ["milk"]
    assert due[0].next_purchase_in == 2
    assert due[0].is_due_soon is True
    assert due[0].is_overdue is False


def test_overdue_product_flagged(store: RecordStore) -> None:
    purchase(store, day(0))
    purchase(store, day(7))

    [suggestion] = get_household_frequent_products(store, "h1", now=day(20))

    assert suggestion.is_overdue is True
    assert suggestion.next_purchase_in < 0


def test_analyze_household_patterns(store: RecordStore) -> None:
    assert analyze_household_patterns(store, "h1") == {}

    purchase(store, day(0), product_id="p1", price=2.0, store="hypermart")
    purchase(store, day(10), product_id="p1", price=4.0, store="hypermart")
    add(store, day(7), product_id="p2")  # also a Monday

    summary = analyze_household_patterns(store, "h1")

    assert summary["total_products"] == 2
    assert summary["avg_interval"] == pytest.approx(5.0)
    assert summary["avg_price"] == pytest.approx(1.5)
    assert summary["most_frequent_days"][0] == 1


def test_concurrent_adds_to_one_product_are_not_lost(store: RecordStore) -> None:
    def add_many(user_id: str) -> None:
        for _ in range(50):
            add(store, DAY0, user_id=user_id)

    threads = [threading.Thread(target=add_many, args=(f"u{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    record = store.get_frequency("h1", "p1")
    assert record.total_added == 400
    assert sorted(entry.count for entry in record.added_by) == [50] * 8


def test_failed_update_leaves_record_unchanged(store: RecordStore, monkeypatch) -> None:
    purchase(store, day(0), price=2.0, store="hypermart")
    purchase(store, day(7), price=3.0, store="hypermart")

    def broken(*args, **kwargs):
        raise RuntimeError("lookup failed")

    monkeypatch.setattr(store, "count_similar_households", broken)

    with pytest.raises(RuntimeError):
        purchase(store, day(14), price=9.0, store="hypermart")

    record = store.get_frequency("h1", "p1")
    assert record.total_purchased == 2
    assert record.purchase_intervals.to_list() == [7]
    assert [entry.price for entry in record.price_history] == [2.0, 3.0]
    assert record.average_price == pytest.approx(2.5)
    assert record.last_purchased == day(7)
