"""Logistic regression training module.

This module fits the purchase-propensity weights from recorded training
examples with full-batch gradient descent, and seeds documented default
weights when there is nothing to learn from.
"""

import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import expit
from sklearn.metrics import accuracy_score
from sklearn.utils import check_random_state

from smartbuy.config import EngineConfig
from smartbuy.exceptions import ConcurrentWriteError, DegenerateTrainingError
from smartbuy.recommender.features import MODEL_FEATURE_NAMES, to_model_array
from smartbuy.recommender.store import RecordStore, TrainingExample
from smartbuy.recommender.utils import load_store_snapshot
from smartbuy.recommender.weights import DEFAULT_MAX_RETRIES, WeightStore

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class TrainingResult:
    """Outcome of a training run.

    Attributes:
        weights: Stored weight per model feature name.
        version: Version of the stored weight vector.
        num_examples: Valid examples used (train + test).
        num_train: Size of the training split.
        num_test: Size of the held-out split.
        accuracy: Test accuracy at the decision threshold, None without a test split.
        used_defaults: True when default weights were seeded instead of trained.
    """

    weights: Dict[str, float]
    version: int
    num_examples: int = 0
    num_train: int = 0
    num_test: int = 0
    accuracy: Optional[float] = None
    used_defaults: bool = False


def is_valid_example(example: TrainingExample) -> bool:
    """An example needs a non-empty feature mapping and a 0/1 numeric label."""
    if example is None or not isinstance(example.features, dict) or not example.features:
        return False
    label = example.label
    if isinstance(label, bool) or not isinstance(label, Real):
        return False
    return label in (0, 1)


def prepare_training_data(
    examples: Sequence[TrainingExample],
) -> Tuple[np.ndarray, np.ndarray]:
    """Turn valid examples into a design matrix and a label vector.

    Raises:
        DegenerateTrainingError: If no example is valid.
    """
    valid = [e for e in examples if is_valid_example(e)]
    if not valid:
        raise DegenerateTrainingError(len(examples))

    logger.info(f"Found {len(valid)} valid training examples out of {len(examples)} total")

    X = np.vstack([to_model_array(e.features) for e in valid])
    y = np.array([float(e.label) for e in valid], dtype=np.float64)
    return X, y


def split_indices(
    n_samples: int,
    train_fraction: float,
    random_state: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Shuffle sample indices and split them into train and test parts.

    The train part holds ``floor(train_fraction * n)`` samples. When that is
    zero every sample is used for training and the test part is empty.
    """
    rng = check_random_state(random_state)
    order = rng.permutation(n_samples)
    split = int(math.floor(n_samples * train_fraction))
    if split == 0:
        return order, order[:0]
    return order[:split], order[split:]


def train_logistic_regression(
    X: np.ndarray,
    y: np.ndarray,
    learning_rate: float,
    iterations: int,
) -> np.ndarray:
    """Full-batch gradient descent from zero weights.

    Every iteration applies the mean gradient of ``(p - y) * x`` to all
    weights at once.
    """
    n_samples, n_features = X.shape
    weights = np.zeros(n_features, dtype=np.float64)

    for _ in range(iterations):
        predictions = expit(X @ weights)
        gradient = X.T @ (predictions - y) / n_samples
        weights -= learning_rate * gradient

    return weights


def evaluate_accuracy(
    X: np.ndarray, y: np.ndarray, weights: np.ndarray, threshold: float
) -> Optional[float]:
    if len(y) == 0:
        return None
    predicted = (expit(X @ weights) >= threshold).astype(np.float64)
    return float(accuracy_score(y, predicted))


def initialize_default_weights(
    weight_store: WeightStore, expected_version: Optional[int] = None
) -> TrainingResult:
    vector = weight_store.seed_defaults(expected_version)
    return TrainingResult(
        weights=dict(vector.weights),
        version=vector.version,
        used_defaults=True,
    )


def train_model(
    store: RecordStore,
    weight_store: WeightStore,
    config: Optional[EngineConfig] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> TrainingResult:
    """Train the purchase model from all recorded examples.

    With no valid examples the default weights are seeded and returned.
    Otherwise the examples are shuffled, split, fitted and the resulting
    weights replace the stored vector.

    The weight version is read before the examples. If another writer (an
    online update) commits while training runs, the persist fails its
    version check and training starts over on the fresh example set.

    Args:
        store: Record store holding the training examples.
        weight_store: Destination of the trained weights.
        config: Engine configuration (learning rate, iterations, split, seed).
        max_retries: Training attempts before giving up on a busy store.

    Returns:
        TrainingResult describing the stored weights.

    Raises:
        ConcurrentWriteError: If every attempt lost its version check.

    Example:
        >>> result = train_model(store, weight_store, EngineConfig(random_state=42))
        >>> print(result.accuracy)
    """
    config = config or EngineConfig()

    logger.info("=" * 60)
    logger.info("Starting purchase model training")
    logger.info("=" * 60)

    last_error: Optional[ConcurrentWriteError] = None
    for attempt in range(max_retries):
        try:
            return _train_once(store, weight_store, config)
        except ConcurrentWriteError as e:
            last_error = e
            logger.warning(
                "Weights changed during training, retraining",
                extra={"attempt": attempt + 1, "expected_version": e.details["expected_version"]},
            )
    raise last_error


def _train_once(
    store: RecordStore, weight_store: WeightStore, config: EngineConfig
) -> TrainingResult:
    base_version = weight_store.version
    examples: List[TrainingExample] = store.list_training_examples()
    try:
        X, y = prepare_training_data(examples)
    except DegenerateTrainingError as e:
        logger.info(e.message)
        return initialize_default_weights(weight_store, base_version)

    train_idx, test_idx = split_indices(len(y), config.train_fraction, config.random_state)
    X_train, y_train = X[train_idx], y[train_idx]
    X_test, y_test = X[test_idx], y[test_idx]

    logger.info(
        f"Learning rate: {config.learning_rate}, Iterations: {config.iterations}, "
        f"Train/test: {len(y_train)}/{len(y_test)}"
    )

    trained = train_logistic_regression(
        X_train, y_train, config.learning_rate, config.iterations
    )

    accuracy = evaluate_accuracy(X_test, y_test, trained, config.decision_threshold)
    if accuracy is not None:
        logger.info(
            f"Model accuracy on test set: {accuracy * 100:.2f}% "
            f"({int(round(accuracy * len(y_test)))}/{len(y_test)})"
        )
    else:
        logger.info("Not enough data for test set accuracy calculation")

    vector = weight_store.replace(
        {name: float(trained[i]) for i, name in enumerate(MODEL_FEATURE_NAMES)},
        expected_version=base_version,
    )

    logger.info("Training completed successfully!")

    return TrainingResult(
        weights=dict(vector.weights),
        version=vector.version,
        num_examples=len(y),
        num_train=len(y_train),
        num_test=len(y_test),
        accuracy=accuracy,
    )


def train_from_snapshot(data_dir: str, config: Optional[EngineConfig] = None) -> TrainingResult:
    """Load the store snapshot in ``data_dir`` and train into its weight file.

    Raises:
        FileNotFoundError: If there is no snapshot in ``data_dir``.
    """
    store = load_store_snapshot(data_dir)
    weight_store = WeightStore.in_dir(data_dir)
    return train_model(store, weight_store, config)


def main() -> None:
    """Main entry point for command-line execution."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = EngineConfig.from_env()
    try:
        train_from_snapshot(config.data_dir, config)
    except Exception as e:
        logger.error(f"Failed to train model: {e}")
        exit(1)


if __name__ == "__main__":
    main()
