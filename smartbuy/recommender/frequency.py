"""Household frequency tracking.

Keeps one running record per (household, product): add and purchase counts,
recent purchase intervals, streaks, price history and coarse shopping
patterns. From these it predicts when the household will need the product
again, how confident that prediction is, and a 0-100 household score used to
surface frequent products. This path is independent of the logistic model.
"""

import logging
import math
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Deque, Dict, Iterable, Iterator, List, Optional

import numpy as np
import pandas as pd

from smartbuy.exceptions import InvalidInteractionError
from smartbuy.recommender.store import RecordStore
from smartbuy.recommender.utils import days_between, utcnow

# Configure module logger
logger = logging.getLogger(__name__)

FREQUENCY_ACTIONS = ("added", "purchased")

MAX_PURCHASE_INTERVALS = 10
MAX_PRICE_HISTORY = 20
STREAK_WINDOW_DAYS = 7
SIMILAR_HOUSEHOLD_MIN_ADDS = 3
PREFERRED_DAY_COUNT = 3

BASE_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95
STREAK_CONFIDENCE_BONUS = 0.1
STREAK_BONUS_THRESHOLD = 3

DUE_SOON_DAYS = 3

# Household score blend
FREQUENCY_SCORE_WEIGHT = 0.35
RECENCY_SCORE_WEIGHT = 0.20
STREAK_SCORE_WEIGHT = 0.15
URGENCY_SCORE_WEIGHT = 0.15
SIMILAR_SCORE_WEIGHT = 0.10
CONSISTENCY_SCORE_WEIGHT = 0.05


class RecordState(Enum):
    """Lifecycle of a frequency record.

    NEW: nothing recorded yet. TRACKED: at least one interaction.
    PREDICTING: at least two purchases, so intervals are meaningful.
    """

    NEW = "new"
    TRACKED = "tracked"
    PREDICTING = "predicting"


class RingBuffer:
    """Fixed-capacity FIFO; appending to a full buffer evicts the oldest item."""

    def __init__(self, capacity: int, items: Iterable[Any] = ()):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._items: Deque[Any] = deque(items, maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def append(self, item: Any) -> Optional[Any]:
        """Append an item, returning the evicted one if the buffer was full."""
        evicted = self._items[0] if len(self._items) == self._items.maxlen else None
        self._items.append(item)
        return evicted

    def to_list(self) -> List[Any]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __getitem__(self, index: int) -> Any:
        return self._items[index]

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self.capacity}, items={self.to_list()})"


@dataclass
class PriceEntry:
    price: float
    store: str
    date: datetime


@dataclass
class UserAddCount:
    user_id: str
    count: int = 0


@dataclass
class HouseholdPatterns:
    """Coarse shopping habits derived from the household's interactions."""

    preferred_days: List[int] = field(default_factory=list)  # 0 = Sunday
    preferred_time: str = "afternoon"
    shopping_frequency: str = "weekly"
    seasonal_trend: str = "stable"
    weekday_counts: Dict[int, int] = field(default_factory=dict)


@dataclass
class HouseholdFrequencyRecord:
    """Running statistics for one product in one household."""

    household_id: str
    product_id: str
    total_added: int = 0
    total_purchased: int = 0
    last_added: Optional[datetime] = None
    last_purchased: Optional[datetime] = None
    added_by: List[UserAddCount] = field(default_factory=list)
    purchase_intervals: RingBuffer = field(
        default_factory=lambda: RingBuffer(MAX_PURCHASE_INTERVALS)
    )
    average_interval: float = 0.0
    next_purchase_prediction: Optional[datetime] = None
    confidence: float = 0.0
    household_streak: int = 0
    longest_streak: int = 0
    price_history: RingBuffer = field(default_factory=lambda: RingBuffer(MAX_PRICE_HISTORY))
    average_price: float = 0.0
    household_score: int = 0
    similar_households: int = 0
    patterns: HouseholdPatterns = field(default_factory=HouseholdPatterns)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def state(self) -> RecordState:
        if self.total_purchased >= 2:
            return RecordState.PREDICTING
        if self.total_added or self.total_purchased:
            return RecordState.TRACKED
        return RecordState.NEW

    def add_interval(self, days: int) -> None:
        """Record a purchase gap and refresh the average from the buffer."""
        self.purchase_intervals.append(days)
        self.average_interval = float(np.mean(self.purchase_intervals.to_list()))

    def add_price(self, entry: PriceEntry) -> None:
        """Record a paid price and refresh the average from the buffer."""
        self.price_history.append(entry)
        self.average_price = float(np.mean([e.price for e in self.price_history]))


@dataclass
class HouseholdSuggestion:
    """Household-path suggestion handed to the suggestion UI."""

    product_id: str
    name: str
    frequency: int
    household_score: int
    next_purchase_in: Optional[int]
    confidence: float
    household_streak: int
    is_overdue: bool
    is_due_soon: bool
    average_price: float
    similar_households: int
    shopping_frequency: str
    added_by: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def apply_added(record: HouseholdFrequencyRecord, user_id: str, now: datetime) -> None:
    """Count an add, credit the user and advance or reset the streak."""
    previous = record.last_added
    record.total_added += 1

    if previous is not None and days_between(now, previous) <= STREAK_WINDOW_DAYS:
        record.household_streak += 1
    else:
        record.household_streak = 1
    record.longest_streak = max(record.longest_streak, record.household_streak)
    record.last_added = now

    for entry in record.added_by:
        if entry.user_id == str(user_id):
            entry.count += 1
            break
    else:
        record.added_by.append(UserAddCount(user_id=str(user_id), count=1))


def apply_purchased(
    record: HouseholdFrequencyRecord,
    now: datetime,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Count a purchase, track the gap since the last one and the price paid."""
    metadata = metadata or {}
    record.total_purchased += 1

    if record.last_purchased is not None:
        record.add_interval(days_between(now, record.last_purchased))
    record.last_purchased = now

    price = metadata.get("price")
    shop = metadata.get("store")
    # A price only counts when we know where it was paid
    if price is not None and shop is not None:
        record.add_price(PriceEntry(price=float(price), store=str(shop), date=now))


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def shopping_frequency_label(average_interval: float) -> str:
    if average_interval <= 1:
        return "daily"
    if average_interval <= 7:
        return "weekly"
    if average_interval <= 14:
        return "bi-weekly"
    return "monthly"


def update_household_patterns(record: HouseholdFrequencyRecord, now: datetime) -> None:
    """Refresh weekday, time-of-day, frequency and seasonal labels."""
    patterns = record.patterns

    weekday = now.isoweekday() % 7
    patterns.weekday_counts[weekday] = patterns.weekday_counts.get(weekday, 0) + 1
    patterns.preferred_days = [
        day for day, _ in Counter(patterns.weekday_counts).most_common(PREFERRED_DAY_COUNT)
    ]

    # Last event wins; not a majority vote over history.
    patterns.preferred_time = time_of_day(now.hour)

    if len(record.purchase_intervals) > 0:
        patterns.shopping_frequency = shopping_frequency_label(record.average_interval)

    holiday_season = now.month in (11, 12, 1, 2)
    summer = 6 <= now.month <= 9
    if holiday_season and record.total_added > 5:
        patterns.seasonal_trend = "increasing"
    elif summer and record.total_added > 5:
        patterns.seasonal_trend = "stable"


def calculate_next_purchase_prediction(record: HouseholdFrequencyRecord) -> None:
    """Predict the next purchase date and the confidence in it."""
    if record.total_purchased < 2 or record.average_interval == 0:
        record.next_purchase_prediction = None
        record.confidence = 0.0
        return

    last = record.last_purchased or record.last_added
    record.next_purchase_prediction = last + timedelta(days=record.average_interval)

    intervals = record.purchase_intervals.to_list()
    if len(intervals) < 2:
        confidence = BASE_CONFIDENCE
    else:
        mean = record.average_interval
        std_dev = float(np.std(intervals))
        consistency = max(0.0, 1 - std_dev / mean)
        confidence = min(MAX_CONFIDENCE, BASE_CONFIDENCE + consistency * 0.65)

    if record.household_streak > STREAK_BONUS_THRESHOLD:
        confidence = min(MAX_CONFIDENCE, confidence + STREAK_CONFIDENCE_BONUS)

    record.confidence = confidence


def days_until_next_purchase(
    record: HouseholdFrequencyRecord, now: Optional[datetime] = None
) -> Optional[int]:
    if record.next_purchase_prediction is None:
        return None
    return days_between(record.next_purchase_prediction, now or utcnow())


def calculate_household_score(
    record: HouseholdFrequencyRecord, now: Optional[datetime] = None
) -> int:
    """Blend six 0-100 sub-scores into the household score."""
    now = now or utcnow()
    score = 0.0

    score += min(100, record.total_added * 8) * FREQUENCY_SCORE_WEIGHT

    last_seen = record.last_added or record.last_purchased
    if last_seen is not None:
        score += max(0, 100 - days_between(now, last_seen) * 2) * RECENCY_SCORE_WEIGHT

    score += min(100, record.household_streak * 15) * STREAK_SCORE_WEIGHT

    days_until = days_until_next_purchase(record, now)
    urgency = 0.0
    if days_until is not None:
        if days_until <= 0:
            urgency = 100
        elif days_until <= DUE_SOON_DAYS:
            urgency = 90
        elif days_until <= 7:
            urgency = 70
        else:
            urgency = max(0, 50 - (days_until - 7) * 2)
    score += urgency * URGENCY_SCORE_WEIGHT

    score += min(100, record.similar_households * 10) * SIMILAR_SCORE_WEIGHT
    score += record.confidence * 100 * CONSISTENCY_SCORE_WEIGHT

    return int(min(100, max(0, math.floor(score + 0.5))))


def update_household_frequency(
    store: RecordStore,
    household_id: str,
    product_id: str,
    action: str,
    user_id: str,
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> HouseholdFrequencyRecord:
    """Apply an ``added`` or ``purchased`` event to the household record.

    The record is created on first use. All derived fields are recomputed
    and the record is committed atomically under its key lock.

    Raises:
        InvalidInteractionError: For actions other than added/purchased.
    """
    if action not in FREQUENCY_ACTIONS:
        raise InvalidInteractionError(action, list(FREQUENCY_ACTIONS))

    now = now or utcnow()
    household_id = str(household_id)
    product_id = str(product_id)

    def factory() -> HouseholdFrequencyRecord:
        return HouseholdFrequencyRecord(
            household_id=household_id, product_id=product_id, created_at=now
        )

    def mutate(record: HouseholdFrequencyRecord) -> None:
        if action == "added":
            apply_added(record, user_id, now)
        else:
            apply_purchased(record, now, metadata)

        update_household_patterns(record, now)
        calculate_next_purchase_prediction(record)
        record.similar_households = store.count_similar_households(
            product_id, household_id, SIMILAR_HOUSEHOLD_MIN_ADDS
        )
        record.household_score = calculate_household_score(record, now)
        record.updated_at = now

    record = store.upsert_frequency(household_id, product_id, factory, mutate)

    logger.info(
        "Updated household frequency",
        extra={
            "household_id": household_id,
            "product_id": product_id,
            "action": action,
            "total_added": record.total_added,
            "total_purchased": record.total_purchased,
            "household_score": record.household_score,
        },
    )
    return record


def _to_suggestion(
    store: RecordStore, record: HouseholdFrequencyRecord, now: datetime
) -> HouseholdSuggestion:
    product = store.get_product(record.product_id)
    days_until = days_until_next_purchase(record, now)
    return HouseholdSuggestion(
        product_id=record.product_id,
        name=product.name if product else "",
        frequency=record.total_added,
        household_score=calculate_household_score(record, now),
        next_purchase_in=days_until,
        confidence=record.confidence,
        household_streak=record.household_streak,
        is_overdue=days_until is not None and days_until <= 0,
        is_due_soon=days_until is not None and days_until <= DUE_SOON_DAYS,
        average_price=record.average_price,
        similar_households=record.similar_households,
        shopping_frequency=record.patterns.shopping_frequency,
        added_by=[asdict(entry) for entry in record.added_by],
    )


def get_household_frequent_products(
    store: RecordStore,
    household_id: Optional[str],
    limit: int = 10,
    now: Optional[datetime] = None,
) -> List[HouseholdSuggestion]:
    """Household's tracked products, best household score first.

    Scores are recomputed against ``now`` so recency and urgency are current.
    Products the household never interacted with are not included.
    """
    if not household_id:
        logger.info("No household_id provided, returning empty list")
        return []

    now = now or utcnow()
    suggestions = [
        _to_suggestion(store, record, now)
        for record in store.frequency_records_for(household_id)
    ]
    suggestions.sort(key=lambda s: (s.household_score, s.frequency), reverse=True)

    logger.info(
        f"Returning {min(limit, len(suggestions))} household frequent products",
        extra={"household_id": str(household_id)},
    )
    return suggestions[: max(0, limit)]


def get_household_due_soon_products(
    store: RecordStore,
    household_id: Optional[str],
    limit: int = 5,
    within_days: int = 7,
    now: Optional[datetime] = None,
) -> List[HouseholdSuggestion]:
    """Products predicted to be needed within ``within_days``, soonest first."""
    if not household_id:
        return []

    now = now or utcnow()
    horizon = now + timedelta(days=within_days)
    due = [
        record
        for record in store.frequency_records_for(household_id)
        if record.next_purchase_prediction is not None
        and record.next_purchase_prediction <= horizon
    ]
    due.sort(key=lambda r: r.next_purchase_prediction)
    return [_to_suggestion(store, record, now) for record in due[: max(0, limit)]]


def analyze_household_patterns(store: RecordStore, household_id: str) -> Dict[str, Any]:
    """Aggregate view over all of a household's frequency records."""
    records = store.frequency_records_for(household_id)
    if not records:
        return {}

    df = pd.DataFrame(
        {
            "household_score": [r.household_score for r in records],
            "average_interval": [r.average_interval for r in records],
            "average_price": [r.average_price for r in records],
            "preferred_days": [r.patterns.preferred_days for r in records],
        }
    )
    days = df["preferred_days"].explode().dropna()
    most_frequent_days = (
        [int(d) for d in days.astype(int).value_counts().index[:PREFERRED_DAY_COUNT]]
        if not days.empty
        else []
    )

    return {
        "total_products": int(len(df)),
        "avg_household_score": float(df["household_score"].mean()),
        "avg_interval": float(df["average_interval"].mean()),
        "avg_price": float(df["average_price"].mean()),
        "most_frequent_days": most_frequent_days,
    }
