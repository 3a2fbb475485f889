"""Engine configuration.

Module-level defaults plus an ``EngineConfig`` dataclass that can be
overridden through ``SMARTBUY_*`` environment variables.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional

# Logistic model
DEFAULT_LEARNING_RATE = 0.01
DEFAULT_ITERATIONS = 1000
DEFAULT_TRAIN_FRACTION = 0.8
DEFAULT_DECISION_THRESHOLD = 0.5

# Training-example recorder
DEFAULT_PURCHASE_SAMPLE_RATE = 1.0

# Suggestion merge
DEFAULT_MODEL_WEIGHT = 0.6
DEFAULT_HOUSEHOLD_WEIGHT = 0.4
DEFAULT_SUGGESTION_LIMIT = 10

DEFAULT_DATA_DIR = "data"
DEFAULT_LOG_LEVEL = "INFO"

ENV_PREFIX = "SMARTBUY_"


@dataclass
class EngineConfig:
    """Tunable settings for the scoring engine.

    Attributes:
        learning_rate: Step size for batch and online gradient updates.
        iterations: Full-batch gradient descent iterations per training run.
        train_fraction: Share of shuffled examples used for training.
        decision_threshold: Probability cut-off for test-set accuracy.
        random_state: Seed for the train/test shuffle and example sampling.
        purchase_sample_rate: Probability that a purchase becomes a label-1 example.
        model_weight: Weight of the model probability in merged suggestions.
        household_weight: Weight of the household score in merged suggestions.
        data_dir: Directory holding joblib snapshots.
        log_level: Root logging level for the service.
    """

    learning_rate: float = DEFAULT_LEARNING_RATE
    iterations: int = DEFAULT_ITERATIONS
    train_fraction: float = DEFAULT_TRAIN_FRACTION
    decision_threshold: float = DEFAULT_DECISION_THRESHOLD
    random_state: Optional[int] = None
    purchase_sample_rate: float = DEFAULT_PURCHASE_SAMPLE_RATE
    model_weight: float = DEFAULT_MODEL_WEIGHT
    household_weight: float = DEFAULT_HOUSEHOLD_WEIGHT
    data_dir: str = DEFAULT_DATA_DIR
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``SMARTBUY_<FIELD>`` environment variables.

        Unset variables keep their defaults. ``SMARTBUY_RANDOM_STATE`` may be
        an empty string to mean "unseeded".
        """
        values = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.name == "random_state":
                values[f.name] = int(raw) if raw.strip() else None
            elif f.type in (float, "float"):
                values[f.name] = float(raw)
            elif f.type in (int, "int"):
                values[f.name] = int(raw)
            else:
                values[f.name] = raw
        return cls(**values)
