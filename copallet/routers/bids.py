"""
Bid inbox across shipments, scoped by the caller's role.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from copallet.auth.actor_auth import Actor, get_current_actor
from copallet.models.schemas import BidListResponse, BidRead
from copallet.services.lifecycle_engine import LifecycleEngine, get_lifecycle_engine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/bids", response_model=BidListResponse, summary="List the bids visible to the actor")
def list_my_bids(
    status: Optional[str] = Query(None, description="pending | accepted | declined"),
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> BidListResponse:
    bids = engine.list_actor_bids(actor, status=status)
    return BidListResponse(bids=[BidRead.model_validate(b) for b in bids], count=len(bids))
