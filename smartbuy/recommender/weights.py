"""Weight store for the purchase-propensity model.

The engine has exactly one logical weight vector. It is kept as a single
versioned record: every write is a compare-and-swap against the version the
writer read, so a batch retrain and an online update can no longer silently
overwrite each other.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional

import joblib

from smartbuy.exceptions import ConcurrentWriteError, StoreUnavailableError
from smartbuy.recommender.features import MODEL_FEATURE_NAMES
from smartbuy.recommender.utils import WEIGHTS_FILENAME, utcnow

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "bias": 0.0,
    "is_favorite": 0.5,
    "purchased_before": 0.3,
    "times_purchased": 0.2,
    "recently_purchased": 0.4,
    "household_popularity": 0.1,
    "rejected_by_user_count": -0.3,
    "rejected_by_household_count": -0.2,
}

DEFAULT_MAX_RETRIES = 5


@dataclass(frozen=True)
class WeightVector:
    """Snapshot of the named model weights."""

    weights: Dict[str, float]
    version: int
    updated_at: datetime

    def as_list(self):
        """Weights in model feature order; unknown names default to 0."""
        return [float(self.weights.get(name, 0.0)) for name in MODEL_FEATURE_NAMES]


class WeightStore:
    """Versioned, optionally file-backed holder of the model weights.

    ``version`` is 0 while nothing has been persisted. Writers pass the version
    they read as ``expected_version``; a mismatch raises ConcurrentWriteError.
    """

    def __init__(self, path: Optional[str] = None):
        self._lock = threading.Lock()
        self._path = Path(path) if path else None
        self._current: Optional[WeightVector] = None

        if self._path is not None and self._path.exists():
            self._current = self._load()

    @classmethod
    def in_dir(cls, data_dir: str) -> "WeightStore":
        return cls(str(Path(data_dir) / WEIGHTS_FILENAME))

    @property
    def version(self) -> int:
        with self._lock:
            return self._current.version if self._current else 0

    def get(self) -> Optional[WeightVector]:
        """Current weights, or None if no weights were ever persisted."""
        with self._lock:
            return self._current

    def replace(
        self,
        weights: Dict[str, float],
        expected_version: Optional[int] = None,
    ) -> WeightVector:
        """Replace the whole vector.

        Args:
            weights: New weight per feature name. Names outside the model are dropped.
            expected_version: Version the caller based its computation on.
                None skips the check.

        Returns:
            The newly stored WeightVector.

        Raises:
            ConcurrentWriteError: If ``expected_version`` is stale.
        """
        with self._lock:
            actual = self._current.version if self._current else 0
            if expected_version is not None and expected_version != actual:
                raise ConcurrentWriteError(expected_version, actual)

            vector = WeightVector(
                weights={name: float(weights.get(name, 0.0)) for name in MODEL_FEATURE_NAMES},
                version=actual + 1,
                updated_at=utcnow(),
            )
            if self._path is not None:
                self._save(vector)
            self._current = vector

        logger.debug("Stored weight vector", extra={"version": vector.version})
        return vector

    def update(
        self,
        compute: Callable[[Optional[WeightVector]], Dict[str, float]],
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> WeightVector:
        """Read-compute-write with optimistic concurrency.

        ``compute`` receives the current vector (or None) and returns new
        weights. On a version conflict the read and compute are repeated.
        """
        last_error: Optional[ConcurrentWriteError] = None
        for attempt in range(max_retries):
            current = self.get()
            expected = current.version if current else 0
            new_weights = compute(current)
            try:
                return self.replace(new_weights, expected_version=expected)
            except ConcurrentWriteError as e:
                last_error = e
                logger.warning(
                    "Weight write conflict, retrying",
                    extra={"attempt": attempt + 1, "expected_version": expected},
                )
        raise last_error

    def seed_defaults(self, expected_version: Optional[int] = None) -> WeightVector:
        """Store the documented default weights."""
        logger.info("Seeding default weights")
        return self.replace(DEFAULT_WEIGHTS, expected_version=expected_version)

    def _save(self, vector: WeightVector) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            joblib.dump(
                {
                    "weights": vector.weights,
                    "version": vector.version,
                    "updated_at": vector.updated_at,
                },
                self._path,
            )
        except OSError as e:
            logger.error(f"Failed to save weights: {e}", exc_info=True)
            raise StoreUnavailableError(str(self._path), e) from e

    def _load(self) -> WeightVector:
        try:
            data = joblib.load(self._path)
        except Exception as e:
            logger.error(f"Failed to load weights: {e}", exc_info=True)
            raise StoreUnavailableError(str(self._path), e) from e
        logger.info(f"Loaded weights from {self._path}", extra={"version": data["version"]})
        return WeightVector(
            weights=dict(data["weights"]),
            version=int(data["version"]),
            updated_at=data["updated_at"],
        )
