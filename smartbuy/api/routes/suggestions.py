"""Suggestion endpoints for the SmartBuy API.

Model ranking of a candidate set, household frequency suggestions, and the
merged list that the shopping-list UI shows.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from smartbuy.api.dependencies import get_engine
from smartbuy.api.metrics import metrics_service
from smartbuy.config import DEFAULT_SUGGESTION_LIMIT
from smartbuy.recommender.engine import SuggestionEngine
from smartbuy.recommender.infer import NEUTRAL_PROBABILITY

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/suggestions",
    tags=["suggestions"],
)


class RankRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    household_id: Optional[str] = None
    product_ids: List[str] = Field(..., description="Candidate product IDs to rank")


class ScoredProduct(BaseModel):
    product_id: str
    score: float


class RankResponse(BaseModel):
    """Candidates ordered by purchase probability.

    Attributes:
        user_id: User the ranking was computed for.
        suggestions: Products with their probability, highest first.
        weights_version: Version of the weights used, 0 when none are stored.
    """

    user_id: str
    suggestions: List[ScoredProduct]
    weights_version: int


class SuggestRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    household_id: Optional[str] = None
    product_ids: List[str] = Field(
        default_factory=list,
        description="Candidates; the household's tracked products when empty",
    )
    limit: int = Field(default=DEFAULT_SUGGESTION_LIMIT, ge=1, le=100)


class MergedSuggestion(BaseModel):
    product_id: str
    score: float
    model_score: float
    household_score: float
    household: Optional[Dict[str, Any]] = None


class SuggestResponse(BaseModel):
    user_id: str
    household_id: Optional[str]
    suggestions: List[MergedSuggestion]


class HouseholdResponse(BaseModel):
    household_id: str
    suggestions: List[Dict[str, Any]]


@router.post("/rank", response_model=RankResponse)
def rank_candidates(
    request: RankRequest,
    engine: SuggestionEngine = Depends(get_engine),
) -> RankResponse:
    """Rank candidate products for a user with the logistic model.

    Example:
        POST /suggestions/rank {"user_id": "u1", "product_ids": ["p1", "p2"]}
    """
    start_time = time.perf_counter()
    ranked = engine.rank(request.product_ids, request.user_id, request.household_id)
    latency_ms = (time.perf_counter() - start_time) * 1000

    current = engine.weight_store.get()
    metrics_service.record_ranking(latency_ms, fallback=current is None)

    logger.info(
        f"Ranked {len(ranked)} products for user {request.user_id}",
        extra={"latency_ms": round(latency_ms, 2)},
    )
    return RankResponse(
        user_id=request.user_id,
        suggestions=[ScoredProduct(product_id=r.product_id, score=r.probability) for r in ranked],
        weights_version=current.version if current else 0,
    )


@router.post("", response_model=SuggestResponse)
def suggest(
    request: SuggestRequest,
    engine: SuggestionEngine = Depends(get_engine),
) -> SuggestResponse:
    """Merged model and household suggestions."""
    start_time = time.perf_counter()
    merged = engine.suggest(
        request.user_id,
        request.product_ids,
        household_id=request.household_id,
        limit=request.limit,
    )
    latency_ms = (time.perf_counter() - start_time) * 1000

    fallback = bool(merged) and all(
        s.model_score == NEUTRAL_PROBABILITY and s.household is None for s in merged
    )
    metrics_service.record_ranking(latency_ms, fallback=fallback)

    return SuggestResponse(
        user_id=request.user_id,
        household_id=request.household_id,
        suggestions=[
            MergedSuggestion(
                product_id=s.product_id,
                score=s.score,
                model_score=s.model_score,
                household_score=s.household_score,
                household=s.household.to_dict() if s.household else None,
            )
            for s in merged
        ],
    )


@router.get("/household/{household_id}", response_model=HouseholdResponse)
def household_frequent(
    household_id: str,
    limit: int = Query(default=DEFAULT_SUGGESTION_LIMIT, ge=1, le=100),
    engine: SuggestionEngine = Depends(get_engine),
) -> HouseholdResponse:
    """Products this household adds most, best household score first."""
    suggestions = engine.household_suggestions(household_id, limit=limit)
    return HouseholdResponse(
        household_id=household_id,
        suggestions=[s.to_dict() for s in suggestions],
    )


@router.get("/household/{household_id}/due-soon", response_model=HouseholdResponse)
def household_due_soon(
    household_id: str,
    limit: int = Query(default=5, ge=1, le=100),
    within_days: int = Query(default=7, ge=0),
    engine: SuggestionEngine = Depends(get_engine),
) -> HouseholdResponse:
    """Products predicted to run out within ``within_days``."""
    suggestions = engine.due_soon(household_id, limit=limit, within_days=within_days)
    return HouseholdResponse(
        household_id=household_id,
        suggestions=[s.to_dict() for s in suggestions],
    )


@router.get("/household/{household_id}/patterns")
def household_patterns(
    household_id: str,
    engine: SuggestionEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return {"household_id": household_id, "patterns": engine.household_patterns(household_id)}
