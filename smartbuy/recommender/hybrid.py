"""Hybrid suggestion module.

Combines the model's purchase probability with the household frequency score.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from smartbuy.config import DEFAULT_HOUSEHOLD_WEIGHT, DEFAULT_MODEL_WEIGHT
from smartbuy.recommender.frequency import HouseholdSuggestion
from smartbuy.recommender.infer import NEUTRAL_PROBABILITY, RankedProduct

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class Suggestion:
    """A merged suggestion with the scores it was built from."""

    product_id: str
    score: float
    model_score: float
    household_score: float
    household: Optional[HouseholdSuggestion] = field(default=None, repr=False)


class HybridSuggester:
    """Merges ranker and household-tracker scores."""

    def __init__(
        self,
        model_weight: float = DEFAULT_MODEL_WEIGHT,
        household_weight: float = DEFAULT_HOUSEHOLD_WEIGHT,
    ):
        self.model_weight = model_weight
        self.household_weight = household_weight

        # Normalize weights
        total_weight = model_weight + household_weight
        if total_weight > 0:
            self.model_weight = model_weight / total_weight
            self.household_weight = household_weight / total_weight

        logger.info(
            f"Initialized HybridSuggester: "
            f"model weight={self.model_weight:.2f}, "
            f"household weight={self.household_weight:.2f}"
        )

    def merge(
        self,
        ranked: Sequence[RankedProduct],
        household: Sequence[HouseholdSuggestion],
        limit: Optional[int] = None,
    ) -> List[Suggestion]:
        """Blend both score sources over the union of their products.

        Products missing from the ranking get a neutral probability; products
        without a household record get a household score of 0. Ties keep the
        ranker's order, then the household order.
        """
        model_scores: Dict[str, float] = {r.product_id: r.probability for r in ranked}
        household_by_id: Dict[str, HouseholdSuggestion] = {h.product_id: h for h in household}

        ordered_ids = list(dict.fromkeys([r.product_id for r in ranked] + list(household_by_id)))

        merged = []
        for pid in ordered_ids:
            model_score = model_scores.get(pid, NEUTRAL_PROBABILITY)
            entry = household_by_id.get(pid)
            household_score = entry.household_score / 100.0 if entry else 0.0
            merged.append(
                Suggestion(
                    product_id=pid,
                    score=self.model_weight * model_score + self.household_weight * household_score,
                    model_score=model_score,
                    household_score=household_score,
                    household=entry,
                )
            )

        merged.sort(key=lambda s: s.score, reverse=True)
        if limit is not None:
            merged = merged[: max(0, limit)]

        logger.info(f"Merged {len(merged)} suggestions")
        return merged


def random_fallback(
    candidate_ids: Sequence[str],
    limit: Optional[int] = None,
    random_state: Optional[int] = None,
) -> List[Suggestion]:
    """Unranked fallback: the candidates in random order with neutral scores."""
    shuffled = [str(pid) for pid in dict.fromkeys(candidate_ids)]
    random.Random(random_state).shuffle(shuffled)
    if limit is not None:
        shuffled = shuffled[: max(0, limit)]
    return [
        Suggestion(
            product_id=pid,
            score=NEUTRAL_PROBABILITY,
            model_score=NEUTRAL_PROBABILITY,
            household_score=0.0,
        )
        for pid in shuffled
    ]
