"""Module for ranking candidate products.

Scores each candidate with the logistic model and orders them by purchase
probability.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Union

import numpy as np
from scipy.special import expit

from smartbuy.recommender.features import FeatureVector, to_model_array
from smartbuy.recommender.weights import WeightStore, WeightVector

# Configure module logger
logger = logging.getLogger(__name__)

NEUTRAL_PROBABILITY = 0.5

FeatureInput = Union[FeatureVector, Mapping[str, float]]


@dataclass(frozen=True)
class RankedProduct:
    """A candidate with its predicted purchase probability."""

    product_id: str
    probability: float


def sigmoid(z: float) -> float:
    return float(expit(z))


def predict_probability(x: Sequence[float], weights: Sequence[float]) -> float:
    """Purchase probability ``sigmoid(w . x)``."""
    z = float(np.dot(np.asarray(weights, dtype=np.float64), np.asarray(x, dtype=np.float64)))
    return sigmoid(z)


def _as_array(features: FeatureInput) -> np.ndarray:
    if isinstance(features, FeatureVector):
        return features.model_vector()
    return to_model_array(features)


def rank_products(
    feature_map: Mapping[str, FeatureInput],
    weights: Optional[WeightVector],
) -> List[RankedProduct]:
    """Rank products by purchase probability, highest first.

    Products with equal probability keep their input order.

    Args:
        feature_map: Product ID to feature vector (or name->value mapping).
        weights: Current weight vector. None means no model has been stored
            yet, in which case every product gets a neutral 0.5.

    Returns:
        Ranked products.
    """
    start_time = time.time()

    if weights is None:
        logger.info("No weights found, using neutral ranking")
        return [
            RankedProduct(product_id=str(pid), probability=NEUTRAL_PROBABILITY)
            for pid in feature_map
        ]

    w = np.asarray(weights.as_list(), dtype=np.float64)
    ranked = [
        RankedProduct(product_id=str(pid), probability=predict_probability(_as_array(x), w))
        for pid, x in feature_map.items()
    ]
    ranked.sort(key=lambda r: r.probability, reverse=True)

    logger.debug(
        "Ranked products",
        extra={
            "num_products": len(ranked),
            "weights_version": weights.version,
            "compute_time_ms": round((time.time() - start_time) * 1000, 2),
        },
    )
    return ranked


def rank_with_store(
    weight_store: WeightStore, feature_map: Mapping[str, FeatureInput]
) -> List[RankedProduct]:
    """Rank using whatever weights the store currently holds."""
    return rank_products(feature_map, weight_store.get())
