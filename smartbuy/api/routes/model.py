"""Model management endpoints.

Trigger a batch retrain and inspect the live weight vector.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from smartbuy.api.dependencies import get_engine
from smartbuy.exceptions import MissingDataError
from smartbuy.recommender.engine import SuggestionEngine

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/model",
    tags=["model"],
)


class TrainResponse(BaseModel):
    weights: Dict[str, float]
    version: int
    num_examples: int
    num_train: int
    num_test: int
    accuracy: Optional[float]
    used_defaults: bool


class WeightsResponse(BaseModel):
    weights: Dict[str, float]
    version: int
    updated_at: datetime


@router.post("/train", response_model=TrainResponse)
def train(engine: SuggestionEngine = Depends(get_engine)) -> TrainResponse:
    """Retrain from all recorded examples and persist the record store."""
    result = engine.train()
    snapshot_path = engine.save()
    logger.info(f"Store snapshot written to {snapshot_path}")
    return TrainResponse(
        weights=result.weights,
        version=result.version,
        num_examples=result.num_examples,
        num_train=result.num_train,
        num_test=result.num_test,
        accuracy=result.accuracy,
        used_defaults=result.used_defaults,
    )


@router.get("/weights", response_model=WeightsResponse)
def get_weights(engine: SuggestionEngine = Depends(get_engine)) -> WeightsResponse:
    """Current weight vector.

    Raises:
        MissingDataError: If no weights have been trained or seeded yet.
    """
    current = engine.weight_store.get()
    if current is None:
        raise MissingDataError("WeightVector", "current")
    return WeightsResponse(
        weights=current.weights,
        version=current.version,
        updated_at=current.updated_at,
    )
