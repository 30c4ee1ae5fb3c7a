"""
Shipments Router
================

REST surface of the shipment lifecycle engine.

Every mutating route runs the engine operation through retry_on_conflict;
typed engine errors propagate to the CoPalletError handler, which maps
them to 400/403/404/409/503 via the error registry.

Routes are plain ``def`` so the blocking database work and conflict
backoff run in the threadpool.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from copallet.auth.actor_auth import Actor, get_current_actor
from copallet.core.retry import retry_on_conflict
from copallet.models.schemas import (
    AcceptBidResponse,
    BidCreateRequest,
    BidListResponse,
    BidRead,
    DeliverRequest,
    HistoryResponse,
    ShipmentCreateRequest,
    ShipmentListResponse,
    ShipmentRead,
    StatusChangeRead,
)
from copallet.services.lifecycle_engine import LifecycleEngine, get_lifecycle_engine

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------

@router.post("/shipments", status_code=201, response_model=ShipmentRead, summary="Create a draft shipment")
def create_shipment(
    body: ShipmentCreateRequest,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ShipmentRead:
    shipment = engine.create_shipment(actor, body.model_dump())
    return ShipmentRead.model_validate(shipment)


@router.get("/shipments", response_model=ShipmentListResponse, summary="List shipments visible to the actor")
def list_shipments(
    status: Optional[str] = Query(None, description="Filter by status (shippers and admins)"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ShipmentListResponse:
    shipments = engine.list_shipments(actor, status=status, limit=limit, offset=offset)
    return ShipmentListResponse(
        shipments=[ShipmentRead.model_validate(s) for s in shipments],
        count=len(shipments),
    )


@router.get("/shipments/{shipment_id}", response_model=ShipmentRead, summary="Get one shipment")
def get_shipment(
    shipment_id: str,
    _actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ShipmentRead:
    return ShipmentRead.model_validate(engine.get_shipment(shipment_id))


@router.get("/shipments/{shipment_id}/history", response_model=HistoryResponse, summary="Status history")
def shipment_history(
    shipment_id: str,
    _actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> HistoryResponse:
    rows = engine.history(shipment_id)
    return HistoryResponse(
        shipment_id=shipment_id,
        history=[StatusChangeRead.model_validate(r) for r in rows],
    )


@router.post("/shipments/{shipment_id}/publish", response_model=ShipmentRead, summary="Publish a draft")
def publish_shipment(
    shipment_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ShipmentRead:
    shipment = retry_on_conflict(lambda: engine.publish(shipment_id, actor))
    return ShipmentRead.model_validate(shipment)


@router.post("/shipments/{shipment_id}/start-transit", response_model=ShipmentRead, summary="Start transit")
def start_transit(
    shipment_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ShipmentRead:
    shipment = retry_on_conflict(lambda: engine.start_transit(shipment_id, actor))
    return ShipmentRead.model_validate(shipment)


@router.post("/shipments/{shipment_id}/deliver", response_model=ShipmentRead, summary="Mark delivered")
def mark_delivered(
    shipment_id: str,
    body: DeliverRequest,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ShipmentRead:
    shipment = retry_on_conflict(
        lambda: engine.mark_delivered(shipment_id, actor, body.pod_reference)
    )
    return ShipmentRead.model_validate(shipment)


@router.post("/shipments/{shipment_id}/cancel", response_model=ShipmentRead, summary="Cancel a shipment")
def cancel_shipment(
    shipment_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ShipmentRead:
    shipment = retry_on_conflict(lambda: engine.cancel(shipment_id, actor))
    return ShipmentRead.model_validate(shipment)


# ---------------------------------------------------------------------------
# Bids on a shipment
# ---------------------------------------------------------------------------

@router.post("/shipments/{shipment_id}/bids", status_code=201, response_model=BidRead, summary="Place a bid")
def place_bid(
    shipment_id: str,
    body: BidCreateRequest,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> BidRead:
    bid = retry_on_conflict(
        lambda: engine.place_bid(
            shipment_id,
            actor,
            body.price,
            eta_pickup=body.eta_pickup,
            message=body.message,
        )
    )
    return BidRead.model_validate(bid)


@router.get("/shipments/{shipment_id}/bids", response_model=BidListResponse, summary="List bids on a shipment")
def list_bids(
    shipment_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> BidListResponse:
    bids = engine.list_bids(shipment_id, actor)
    return BidListResponse(bids=[BidRead.model_validate(b) for b in bids], count=len(bids))


@router.post(
    "/shipments/{shipment_id}/bids/{bid_id}/accept",
    response_model=AcceptBidResponse,
    summary="Accept a bid and assign the carrier",
)
def accept_bid(
    shipment_id: str,
    bid_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> AcceptBidResponse:
    shipment, bid = retry_on_conflict(lambda: engine.accept_bid(shipment_id, bid_id, actor))
    return AcceptBidResponse(
        shipment=ShipmentRead.model_validate(shipment),
        bid=BidRead.model_validate(bid),
    )


@router.post("/shipments/{shipment_id}/bids/{bid_id}/decline", response_model=BidRead, summary="Decline a bid")
def decline_bid(
    shipment_id: str,
    bid_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> BidRead:
    bid = retry_on_conflict(lambda: engine.decline_bid(shipment_id, bid_id, actor))
    return BidRead.model_validate(bid)
