"""Training-example recorder.

Turns real user actions into labeled examples for the trainer: rejections
become label 0, purchases become label 1 (sampled). Undoing a rejection
removes its example again.
"""

import logging
import random
from datetime import datetime
from typing import Optional

from smartbuy.config import EngineConfig
from smartbuy.exceptions import MissingDataError
from smartbuy.recommender.features import FeatureVector, extract_features_for_product
from smartbuy.recommender.online import update_weights
from smartbuy.recommender.store import RecordStore, Rejection, TrainingExample
from smartbuy.recommender.utils import utcnow
from smartbuy.recommender.weights import WeightStore

# Configure module logger
logger = logging.getLogger(__name__)

POSITIVE_LABEL = 1
NEGATIVE_LABEL = 0


def create_training_example(
    store: RecordStore,
    user_id: str,
    product_id: str,
    features: FeatureVector,
    label: int,
    list_id: Optional[str] = None,
    household_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TrainingExample:
    example = TrainingExample(
        user_id=str(user_id),
        product_id=str(product_id),
        features=features.to_dict(),
        label=label,
        timestamp=now or utcnow(),
        list_id=list_id,
        household_id=str(household_id) if household_id is not None else None,
    )
    store.add_training_example(example)
    logger.debug(
        "Training example created",
        extra={"product_id": example.product_id, "label": label},
    )
    return example


def record_purchase_example(
    store: RecordStore,
    user_id: str,
    product_id: str,
    features: FeatureVector,
    household_id: Optional[str] = None,
    list_id: Optional[str] = None,
    sample_rate: float = 1.0,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> Optional[TrainingExample]:
    """Keep a purchase as a positive example with probability ``sample_rate``.

    Returns:
        The stored example, or None when the purchase was not sampled.
    """
    rng = rng or random.Random()
    if sample_rate < 1.0 and rng.random() >= sample_rate:
        logger.debug("Purchase not sampled", extra={"product_id": str(product_id)})
        return None
    return create_training_example(
        store, user_id, product_id, features, POSITIVE_LABEL, list_id, household_id, now
    )


def record_rejection(
    store: RecordStore,
    weight_store: WeightStore,
    user_id: str,
    product_id: str,
    household_id: Optional[str] = None,
    list_id: Optional[str] = None,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
) -> Rejection:
    """Store a rejection and feed it to the model.

    A repeated rejection of the same product by the same user in the same
    household is a no-op. For a new rejection the current features are
    snapshotted into a label-0 example and applied as an online update.
    Failures in the model feed are logged and do not undo the rejection.
    """
    config = config or EngineConfig()
    now = now or utcnow()
    rejection, created = store.add_rejection(
        Rejection(
            product_id=str(product_id),
            rejected_by=str(user_id),
            created_at=now,
            household_id=str(household_id) if household_id is not None else None,
        )
    )
    if not created:
        logger.info("Product already rejected", extra={"product_id": str(product_id)})
        return rejection

    try:
        # Features as they were at the moment of the decision
        features = extract_features_for_product(store, product_id, user_id, household_id, now)
        create_training_example(
            store, user_id, product_id, features, NEGATIVE_LABEL, list_id, household_id, now
        )
        update_weights(weight_store, features, NEGATIVE_LABEL, config.learning_rate)
    except Exception as e:
        logger.error(
            "Failed to feed rejection into model",
            extra={"product_id": str(product_id), "error": str(e)},
            exc_info=True,
        )

    return rejection


def undo_rejection(
    store: RecordStore,
    user_id: str,
    product_id: str,
    household_id: Optional[str] = None,
) -> Rejection:
    """Remove a rejection together with its label-0 training example.

    Raises:
        MissingDataError: If the user has no such rejection.
    """
    rejection = store.remove_rejection(product_id, user_id, household_id)
    if rejection is None:
        raise MissingDataError("Rejection", product_id)

    matches = store.find_training_examples(
        lambda e: e.label == NEGATIVE_LABEL
        and e.product_id == rejection.product_id
        and e.user_id == rejection.rejected_by
        and e.household_id == rejection.household_id
    )
    if matches:
        # The example written for this rejection carries its timestamp
        linked = [e for e in matches if e.timestamp == rejection.created_at] or matches
        store.delete_training_example(linked[-1].example_id)
    else:
        logger.warning(
            "No training example found for removed rejection",
            extra={"product_id": rejection.product_id},
        )

    return rejection

