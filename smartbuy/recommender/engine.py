"""Suggestion engine facade.

Single entry point for collaborators: interaction events go in through
``record_interaction``; ranked suggestions come out of ``rank``,
``household_suggestions`` and ``suggest``. Suggestion paths are best-effort
and degrade to neutral or random orderings instead of raising.
"""

import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from smartbuy.config import EngineConfig
from smartbuy.exceptions import InvalidInteractionError, MissingDataError
from smartbuy.recommender.examples import (
    record_purchase_example,
    record_rejection,
    undo_rejection,
)
from smartbuy.recommender.features import extract_features_for_product, extract_features_for_products
from smartbuy.recommender.frequency import (
    HouseholdFrequencyRecord,
    HouseholdSuggestion,
    analyze_household_patterns,
    get_household_due_soon_products,
    get_household_frequent_products,
    update_household_frequency,
)
from smartbuy.recommender.hybrid import HybridSuggester, Suggestion, random_fallback
from smartbuy.recommender.infer import NEUTRAL_PROBABILITY, RankedProduct, rank_products
from smartbuy.recommender.store import PurchaseRecord, RecordStore, Rejection
from smartbuy.recommender.train import TrainingResult, train_model
from smartbuy.recommender.utils import (
    check_snapshot_exists,
    load_store_snapshot,
    as_utc,
    save_store_snapshot,
    utcnow,
)
from smartbuy.recommender.weights import WeightStore

# Configure module logger
logger = logging.getLogger(__name__)

INTERACTION_ACTIONS = ("added", "purchased", "rejected", "favorited")


class SuggestionEngine:
    """Wires the record store, the weight store and the scoring components."""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        weight_store: Optional[WeightStore] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig()
        self.store = store if store is not None else RecordStore()
        self.weight_store = weight_store if weight_store is not None else WeightStore()
        self.suggester = HybridSuggester(self.config.model_weight, self.config.household_weight)
        self._rng = random.Random(self.config.random_state)

    @classmethod
    def from_data_dir(cls, config: Optional[EngineConfig] = None) -> "SuggestionEngine":
        """Engine backed by the snapshot and weight files in ``config.data_dir``."""
        config = config or EngineConfig()
        if check_snapshot_exists(config.data_dir):
            store = load_store_snapshot(config.data_dir)
        else:
            logger.info(f"No store snapshot in {config.data_dir}, starting empty")
            store = RecordStore()
        return cls(store, WeightStore.in_dir(config.data_dir), config)

    def save(self) -> Path:
        return save_store_snapshot(self.store, self.config.data_dir)

    # ----- events -----

    def record_interaction(
        self,
        actor_id: str,
        product_id: str,
        action: str,
        household_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[HouseholdFrequencyRecord]:
        """Route one interaction event to the components that consume it.

        Args:
            actor_id: User who acted.
            product_id: Product acted upon.
            action: One of added, purchased, rejected, favorited.
            household_id: Household the user acted for, if any.
            metadata: Optional ``list_id``, ``quantity``, ``price``, ``store``.
            now: Event time (defaults to the current UTC time).

        Returns:
            The updated household frequency record for added/purchased events
            with a household, otherwise None.

        Raises:
            InvalidInteractionError: If ``action`` is unknown.
        """
        if action not in INTERACTION_ACTIONS:
            raise InvalidInteractionError(action, list(INTERACTION_ACTIONS))

        metadata = metadata or {}
        now = as_utc(now) if now is not None else utcnow()
        list_id = metadata.get("list_id")

        logger.info(
            "Recording interaction",
            extra={
                "user_id": str(actor_id),
                "product_id": str(product_id),
                "action": action,
                "household_id": household_id,
            },
        )

        if action == "rejected":
            self.reject(actor_id, product_id, household_id, list_id, now)
            return None

        if action == "favorited":
            self.store.add_favorite(actor_id, product_id)
            return None

        if action == "purchased":
            self._record_purchase(actor_id, product_id, household_id, metadata, now)

        if household_id is None:
            return None

        try:
            return update_household_frequency(
                self.store, household_id, product_id, action, actor_id, metadata, now
            )
        except Exception as e:
            logger.error(
                "Error updating household frequency tracking",
                extra={"household_id": str(household_id), "error": str(e)},
                exc_info=True,
            )
            return None

    def _record_purchase(
        self,
        user_id: str,
        product_id: str,
        household_id: Optional[str],
        metadata: Dict[str, Any],
        now: datetime,
    ) -> None:
        # Snapshot features before the purchase itself shows up in them
        features = extract_features_for_product(self.store, product_id, user_id, household_id, now)

        self.store.add_purchase(
            PurchaseRecord(
                user_id=str(user_id),
                product_id=str(product_id),
                bought_at=now,
                household_id=str(household_id) if household_id is not None else None,
                quantity=int(metadata.get("quantity", 1)),
            )
        )

        try:
            record_purchase_example(
                self.store,
                user_id,
                product_id,
                features,
                household_id=household_id,
                list_id=metadata.get("list_id"),
                sample_rate=self.config.purchase_sample_rate,
                rng=self._rng,
                now=now,
            )
        except Exception as e:
            logger.error(f"Error creating purchase training example: {e}", exc_info=True)

    def replay(self, events: pd.DataFrame) -> int:
        """Feed an event log (see ``load_interactions_csv``) through the engine.

        Rows with an unknown action are skipped and logged.

        Returns:
            Number of events applied.
        """
        applied = 0
        for row in events.to_dict("records"):
            metadata = {
                key: row[key]
                for key in ("list_id", "quantity", "price", "store")
                if key in row and not pd.isna(row[key])
            }
            household = row.get("household_id")
            try:
                self.record_interaction(
                    row["user_id"],
                    row["product_id"],
                    row["action"],
                    household_id=None if pd.isna(household) else household,
                    metadata=metadata,
                    now=row["timestamp"].to_pydatetime(),
                )
            except InvalidInteractionError as e:
                logger.warning(f"Skipping event: {e.message}")
                continue
            applied += 1

        logger.info(f"Replayed {applied} of {len(events)} events")
        return applied

    def reject(
        self,
        user_id: str,
        product_id: str,
        household_id: Optional[str] = None,
        list_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Rejection:
        return record_rejection(
            self.store,
            self.weight_store,
            user_id,
            product_id,
            household_id=household_id,
            list_id=list_id,
            config=self.config,
            now=as_utc(now) if now is not None else None,
        )

    def undo_rejection(
        self, user_id: str, product_id: str, household_id: Optional[str] = None
    ) -> Rejection:
        return undo_rejection(self.store, user_id, product_id, household_id)

    def train(self) -> TrainingResult:
        return train_model(self.store, self.weight_store, self.config)

    # ----- suggestions -----

    def rank(
        self,
        candidate_ids: Sequence[str],
        user_id: str,
        household_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[RankedProduct]:
        """Model path: candidates ordered by purchase probability.

        Any failure yields the candidates in input order at probability 0.5.
        """
        try:
            features = extract_features_for_products(
                self.store, candidate_ids, user_id, household_id, now
            )
            return rank_products(features, self.weight_store.get())
        except Exception as e:
            logger.error(
                "Ranking failed, using neutral probabilities",
                extra={"user_id": str(user_id), "error": str(e)},
                exc_info=True,
            )
            return [
                RankedProduct(product_id=str(pid), probability=NEUTRAL_PROBABILITY)
                for pid in dict.fromkeys(candidate_ids)
            ]

    def household_suggestions(
        self,
        household_id: Optional[str],
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> List[HouseholdSuggestion]:
        """Household path: frequently needed products. Empty on failure."""
        try:
            return get_household_frequent_products(self.store, household_id, limit, now)
        except Exception as e:
            logger.error(f"Error getting household frequent products: {e}", exc_info=True)
            return []

    def due_soon(
        self,
        household_id: Optional[str],
        limit: int = 5,
        within_days: int = 7,
        now: Optional[datetime] = None,
    ) -> List[HouseholdSuggestion]:
        try:
            return get_household_due_soon_products(
                self.store, household_id, limit, within_days, now
            )
        except Exception as e:
            logger.error(f"Error getting household due soon products: {e}", exc_info=True)
            return []

    def household_patterns(self, household_id: str) -> Dict[str, Any]:
        try:
            return analyze_household_patterns(self.store, household_id)
        except Exception as e:
            logger.error(f"Error analyzing household patterns: {e}", exc_info=True)
            return {}

    def _require_known_candidates(self, candidate_ids: Sequence[str]) -> None:
        if not self.store.get_products(candidate_ids):
            raise MissingDataError("Products", ",".join(str(pid) for pid in candidate_ids))

    def suggest(
        self,
        user_id: str,
        candidate_ids: Optional[Sequence[str]] = None,
        household_id: Optional[str] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Suggestion]:
        """Merged suggestions from the model and household paths.

        Without candidates, the household's tracked products are the
        candidates. If none of the candidates is a known product the result
        is the candidate set in random order.
        """
        candidates = [str(pid) for pid in dict.fromkeys(candidate_ids or [])]

        household: List[HouseholdSuggestion] = []
        if household_id is not None:
            tracked_count = len(self.store.frequency_records_for(household_id))
            tracked = self.household_suggestions(household_id, limit=tracked_count, now=now)
            if candidates:
                wanted = set(candidates)
                household = [h for h in tracked if h.product_id in wanted]
            else:
                household = tracked
                candidates = [h.product_id for h in tracked]

        if not candidates:
            return []

        try:
            self._require_known_candidates(candidates)
        except MissingDataError as e:
            logger.warning(f"{e.message}; falling back to random order")
            return random_fallback(candidates, limit, self.config.random_state)

        ranked = self.rank(candidates, user_id, household_id, now)
        return self.suggester.merge(ranked, household, limit)
