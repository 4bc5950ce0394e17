"""Rating endpoints.

Routes
------
All paths are relative to ``/graphs/{collection}/nodes``::

    POST /{node_id}/ratings              Body: {"user_id": "...", "rating": 0-100}
    GET  /{node_id}/ratings/{user_id}    The user's own rating (or null)
    GET  /{node_id}/ai-rating            Whether the node has its AI rating
    POST /{node_id}/ai-rating            Generate the AI rating if missing
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from inquiry.services.ai_rating import trigger_ai_rating
from inquiry.services.ratings import (
    RatingSummary,
    get_ai_rating,
    get_user_rating,
    submit_human_rating,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class RatingRequest(BaseModel):
    user_id: str
    rating: int


class RatingSummaryResponse(BaseModel):
    node_id: str
    human_average_rating: int
    human_rating_count: int
    average_rating: int
    total_rating_count: int
    ai_rating: Optional[int]


class UserRatingResponse(BaseModel):
    node_id: str
    user_id: str
    rating: Optional[int]


class AIRatingStatusResponse(BaseModel):
    node_id: str
    has_rating: bool
    rating: Optional[int]


class AIRatingTriggerResponse(BaseModel):
    node_id: str
    ai_rating: Optional[int]
    already_exists: bool
    average_rating: Optional[int] = None
    total_rating_count: Optional[int] = None


def _summary_response(node_id: str, summary: RatingSummary) -> dict[str, Any]:
    return {
        "node_id": node_id,
        "human_average_rating": summary.human_average_rating,
        "human_rating_count": summary.human_rating_count,
        "average_rating": summary.average_rating,
        "total_rating_count": summary.total_rating_count,
        "ai_rating": summary.ai_rating,
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/{node_id}/ratings", response_model=RatingSummaryResponse)
def rate(collection: str, node_id: str, body: RatingRequest, request: Request) -> dict[str, Any]:
    """Record (or replace) the user's rating and return the new aggregates."""
    summary = submit_human_rating(
        request.app.state.db, node_id, body.user_id, body.rating, collection
    )
    return _summary_response(node_id, summary)


@router.get("/{node_id}/ratings/{user_id}", response_model=UserRatingResponse)
def user_rating(collection: str, node_id: str, user_id: str, request: Request) -> dict[str, Any]:
    rating = get_user_rating(request.app.state.db, node_id, user_id, collection)
    return {"node_id": node_id, "user_id": user_id, "rating": rating}


@router.get("/{node_id}/ai-rating", response_model=AIRatingStatusResponse)
def ai_rating_status(collection: str, node_id: str, request: Request) -> dict[str, Any]:
    status = get_ai_rating(request.app.state.db, node_id, collection)
    return {"node_id": node_id, "has_rating": status.has_rating, "rating": status.rating}


@router.post("/{node_id}/ai-rating", response_model=AIRatingTriggerResponse)
async def ai_rating_trigger(collection: str, node_id: str, request: Request) -> dict[str, Any]:
    """Ask the model to rate the node unless it already has an AI rating.

    Question nodes are never AI-rated; they report ``ai_rating: null``.
    """
    result = await trigger_ai_rating(request.app.state.db, node_id, collection)
    if result is None:
        return {"node_id": node_id, "ai_rating": None, "already_exists": False}
    return {
        "node_id": node_id,
        "ai_rating": result.ai_rating,
        "already_exists": result.already_exists,
        "average_rating": result.average_rating,
        "total_rating_count": result.total_rating_count,
    }
