"""Interaction and rejection endpoints.

Events from the shopping-list service enter the engine here: list adds,
purchases, favorites and explicit rejections (with undo).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from smartbuy.api.dependencies import get_engine
from smartbuy.api.metrics import metrics_service
from smartbuy.recommender.engine import INTERACTION_ACTIONS, SuggestionEngine
from smartbuy.recommender.store import Rejection

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(tags=["interactions"])


class InteractionMetadata(BaseModel):
    list_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    price: Optional[float] = Field(default=None, ge=0)
    store: Optional[str] = None


class InteractionRequest(BaseModel):
    """One user action on a product.

    Attributes:
        actor_id: User who acted.
        product_id: Product acted upon.
        action: One of added, purchased, rejected, favorited.
        household_id: Household the list belongs to, if any.
        timestamp: Event time; the server time is used when omitted. Values
            without an offset are read as UTC.
        metadata: List id, quantity and price details.
    """

    actor_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    action: str = Field(..., description=f"One of {', '.join(INTERACTION_ACTIONS)}")
    household_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    metadata: InteractionMetadata = Field(default_factory=InteractionMetadata)


class HouseholdRecordSummary(BaseModel):
    household_id: str
    product_id: str
    state: str
    total_added: int
    total_purchased: int
    household_streak: int
    longest_streak: int
    average_interval: float
    next_purchase_prediction: Optional[datetime]
    confidence: float
    household_score: int


class InteractionResponse(BaseModel):
    status: str = "recorded"
    action: str
    household_record: Optional[HouseholdRecordSummary] = None


class RejectionRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    household_id: Optional[str] = None
    list_id: Optional[str] = None


class RejectionResponse(BaseModel):
    product_id: str
    rejected_by: str
    household_id: Optional[str]
    created_at: datetime

    @classmethod
    def from_rejection(cls, rejection: Rejection) -> "RejectionResponse":
        return cls(
            product_id=rejection.product_id,
            rejected_by=rejection.rejected_by,
            household_id=rejection.household_id,
            created_at=rejection.created_at,
        )


@router.post("/interactions", response_model=InteractionResponse)
def record_interaction(
    request: InteractionRequest,
    engine: SuggestionEngine = Depends(get_engine),
) -> InteractionResponse:
    """Record an interaction event.

    Unknown actions are rejected with 422 by the engine's error handler.
    """
    metadata: Dict[str, Any] = request.metadata.model_dump(exclude_none=True)
    record = engine.record_interaction(
        request.actor_id,
        request.product_id,
        request.action,
        household_id=request.household_id,
        metadata=metadata,
        now=request.timestamp,
    )
    metrics_service.record_interaction()

    summary = None
    if record is not None:
        summary = HouseholdRecordSummary(
            household_id=record.household_id,
            product_id=record.product_id,
            state=record.state.value,
            total_added=record.total_added,
            total_purchased=record.total_purchased,
            household_streak=record.household_streak,
            longest_streak=record.longest_streak,
            average_interval=record.average_interval,
            next_purchase_prediction=record.next_purchase_prediction,
            confidence=record.confidence,
            household_score=record.household_score,
        )
    return InteractionResponse(action=request.action, household_record=summary)


@router.post(
    "/rejections",
    response_model=RejectionResponse,
    status_code=status.HTTP_201_CREATED,
)
def reject_product(
    request: RejectionRequest,
    engine: SuggestionEngine = Depends(get_engine),
) -> RejectionResponse:
    """Reject a suggested product. Rejecting the same product twice is a no-op."""
    rejection = engine.reject(
        request.user_id,
        request.product_id,
        household_id=request.household_id,
        list_id=request.list_id,
    )
    return RejectionResponse.from_rejection(rejection)


@router.get("/rejections", response_model=List[RejectionResponse])
def list_rejections(
    user_id: str,
    household_id: Optional[str] = None,
    engine: SuggestionEngine = Depends(get_engine),
) -> List[RejectionResponse]:
    return [
        RejectionResponse.from_rejection(r)
        for r in engine.store.list_rejections(user_id, household_id)
    ]


@router.delete("/rejections/{product_id}", response_model=RejectionResponse)
def undo_rejection(
    product_id: str,
    user_id: str,
    household_id: Optional[str] = None,
    engine: SuggestionEngine = Depends(get_engine),
) -> RejectionResponse:
    """Undo a rejection; its training example is removed as well."""
    rejection = engine.undo_rejection(user_id, product_id, household_id)
    return RejectionResponse.from_rejection(rejection)
