"""Feature extraction for the purchase-propensity model.

Builds one FeatureVector per candidate product for an (actor, household)
pair out of four lookups: favorites, purchase history, rejection history and
product metadata. Normalized features are scaled over the candidate set only.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np

from smartbuy.exceptions import NormalizationError
from smartbuy.recommender.store import RecordStore
from smartbuy.recommender.utils import utcnow

# Configure module logger
logger = logging.getLogger(__name__)

RECENT_PURCHASE_DAYS = 30

FEATURE_NAMES = (
    "bias",
    "is_favorite",
    "purchased_before",
    "times_purchased",
    "recently_purchased",
    "rejected_by_user_count",
    "rejected_by_household_count",
    "household_popularity",
    "price_score",
    "category_popularity",
)

# Features weighted by the logistic model, in weight order.
MODEL_FEATURE_NAMES = (
    "bias",
    "is_favorite",
    "purchased_before",
    "times_purchased",
    "recently_purchased",
    "household_popularity",
    "rejected_by_user_count",
    "rejected_by_household_count",
)


@dataclass(frozen=True)
class FeatureVector:
    """Numeric description of one (actor, product) pair."""

    bias: float = field(default=1.0, init=False)
    is_favorite: float = 0.0
    purchased_before: float = 0.0
    times_purchased: float = 0.0
    recently_purchased: float = 0.0
    rejected_by_user_count: float = 0.0
    rejected_by_household_count: float = 0.0
    household_popularity: float = 0.0
    price_score: float = 0.0
    category_popularity: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def model_vector(self) -> np.ndarray:
        return to_model_array(self.to_dict())

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, float]) -> "FeatureVector":
        """Build a vector from a name->value mapping; missing names are 0."""
        values = {
            name: float(mapping.get(name, 0.0) or 0.0)
            for name in FEATURE_NAMES
            if name != "bias"
        }
        return cls(**values)


def to_model_array(features: Mapping[str, float]) -> np.ndarray:
    """Model input for a feature mapping. Bias is always 1."""
    return np.array(
        [1.0] + [float(features.get(name, 0.0) or 0.0) for name in MODEL_FEATURE_NAMES[1:]],
        dtype=np.float64,
    )


def _clamp(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def _min_max_scale(
    values: Dict[str, float], feature: str, invert: bool = False
) -> Dict[str, float]:
    """Scale values to [0, 1] over the given set.

    Raises:
        NormalizationError: If every value is the same.
    """
    low = min(values.values())
    high = max(values.values())
    if high == low:
        raise NormalizationError(feature, high)

    scaled = {}
    for key, value in values.items():
        position = (value - low) / (high - low)
        scaled[key] = _clamp(1.0 - position if invert else position)
    return scaled


def extract_features_for_products(
    store: RecordStore,
    product_ids: Iterable[str],
    user_id: str,
    household_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, FeatureVector]:
    """Compute feature vectors for a candidate set.

    Args:
        store: Record store to read from.
        product_ids: Candidate product IDs. Order is preserved in the result.
        user_id: Acting user.
        household_id: Household the user shops for, if any.
        now: Reference time for the "recently purchased" window.

    Returns:
        Mapping of product ID to FeatureVector. Products with no data at all
        get a vector of zeros (plus bias).
    """
    candidates: List[str] = list(dict.fromkeys(str(pid) for pid in product_ids))
    if not candidates:
        return {}

    now = now or utcnow()
    user_id = str(user_id)
    household_id = str(household_id) if household_id is not None else None

    with ThreadPoolExecutor(max_workers=4) as pool:
        favorites_future = pool.submit(store.favorites_for, user_id, candidates)
        purchases_future = pool.submit(store.purchases_for, candidates, user_id, household_id)
        rejections_future = pool.submit(store.rejections_for, candidates, user_id, household_id)
        products_future = pool.submit(store.get_products, candidates)

        favorites = favorites_future.result()
        purchases = purchases_future.result()
        rejections = rejections_future.result()
        products = products_future.result()

    values: Dict[str, Dict[str, float]] = {
        pid: {name: 0.0 for name in FEATURE_NAMES if name != "bias"} for pid in candidates
    }

    for pid in favorites:
        values[pid]["is_favorite"] = 1.0

    # Purchase history, personal and household
    recent_cutoff = now - timedelta(days=RECENT_PURCHASE_DAYS)
    household_counts: Dict[str, float] = {}
    for purchase in purchases:
        features = values[purchase.product_id]
        features["times_purchased"] += purchase.quantity
        features["purchased_before"] = 1.0
        if purchase.bought_at >= recent_cutoff:
            features["recently_purchased"] = 1.0
        if household_id is not None and purchase.household_id == household_id:
            household_counts[purchase.product_id] = (
                household_counts.get(purchase.product_id, 0.0) + purchase.quantity
            )

    if household_counts:
        max_household = max(max(household_counts.values()), 1.0)
        for pid, count in household_counts.items():
            values[pid]["household_popularity"] = _clamp(count / max_household)

    for rejection in rejections:
        features = values[rejection.product_id]
        if rejection.rejected_by == user_id:
            features["rejected_by_user_count"] += 1
        if household_id is not None and rejection.household_id == household_id:
            features["rejected_by_household_count"] += 1

    # Price and category, normalized over the candidates that carry them
    prices = {pid: p.price for pid, p in products.items() if p.price is not None}
    if prices:
        try:
            for pid, score in _min_max_scale(prices, "price_score", invert=True).items():
                values[pid]["price_score"] = score
        except NormalizationError as e:
            logger.debug(e.message)

    category_sizes: Dict[str, int] = {}
    for product in products.values():
        if product.category:
            category_sizes[product.category] = category_sizes.get(product.category, 0) + 1
    category_counts = {
        pid: float(category_sizes[p.category]) for pid, p in products.items() if p.category
    }
    if category_counts:
        try:
            for pid, score in _min_max_scale(category_counts, "category_popularity").items():
                values[pid]["category_popularity"] = score
        except NormalizationError as e:
            logger.debug(e.message)

    if len(products) < len(candidates):
        logger.debug(
            "Missing product metadata",
            extra={"missing": len(candidates) - len(products), "user_id": user_id},
        )

    return {pid: FeatureVector.from_mapping(values[pid]) for pid in candidates}


def extract_features_for_product(
    store: RecordStore,
    product_id: str,
    user_id: str,
    household_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FeatureVector:
    """Feature vector for a single product."""
    features = extract_features_for_products(store, [product_id], user_id, household_id, now)
    return features.get(str(product_id), FeatureVector())
