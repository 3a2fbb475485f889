"""Online (single-example) updates of the purchase model.

Reacts to one labeled observation, typically a rejection, with a single
stochastic gradient step instead of waiting for the next batch retrain.
"""

import logging
from typing import Dict, Optional, Sequence, Union

import numpy as np

from smartbuy.config import DEFAULT_LEARNING_RATE
from smartbuy.recommender.features import MODEL_FEATURE_NAMES, FeatureVector
from smartbuy.recommender.infer import predict_probability
from smartbuy.recommender.weights import DEFAULT_WEIGHTS, WeightStore, WeightVector

# Configure module logger
logger = logging.getLogger(__name__)


def sgd_step(
    weights: Sequence[float],
    x: Sequence[float],
    y: float,
    learning_rate: float = DEFAULT_LEARNING_RATE,
) -> np.ndarray:
    """One logistic-loss gradient step: ``w_i -= lr * (p - y) * x_i``."""
    w = np.asarray(weights, dtype=np.float64)
    x = np.asarray(x, dtype=np.float64)
    error = predict_probability(x, w) - y
    return w - learning_rate * error * x


def update_weights(
    weight_store: WeightStore,
    x: Union[FeatureVector, Sequence[float]],
    y: float,
    learning_rate: float = DEFAULT_LEARNING_RATE,
) -> WeightVector:
    """Apply one example to the stored weights.

    The step is computed from the weights current at read time and written
    back with a version check; a concurrent writer causes a re-read and
    recomputation rather than a lost update. If no weights exist yet, the
    step starts from the defaults.

    Args:
        weight_store: Store holding the live weight vector.
        x: Feature vector, or model-ordered values (bias first).
        y: Observed label, 0 or 1.
        learning_rate: Step size.

    Returns:
        The stored, updated WeightVector.
    """
    x_values = x.model_vector() if isinstance(x, FeatureVector) else np.asarray(x, dtype=np.float64)
    if len(x_values) != len(MODEL_FEATURE_NAMES):
        raise ValueError(
            f"Expected {len(MODEL_FEATURE_NAMES)} feature values, got {len(x_values)}"
        )

    def compute(current: Optional[WeightVector]) -> Dict[str, float]:
        if current is None:
            base = [DEFAULT_WEIGHTS[name] for name in MODEL_FEATURE_NAMES]
        else:
            base = current.as_list()
        updated = sgd_step(base, x_values, y, learning_rate)
        return {name: float(updated[i]) for i, name in enumerate(MODEL_FEATURE_NAMES)}

    vector = weight_store.update(compute)
    logger.info(
        "Weights updated with new example",
        extra={"label": y, "weights_version": vector.version},
    )
    return vector
