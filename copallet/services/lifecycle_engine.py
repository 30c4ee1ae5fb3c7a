"""
Shipment Lifecycle Engine
=========================

Sole writer of shipment status, carrier assignment and bid status.

Each mutating operation is one transaction:
    1. lock the shipment row (NotFound if absent)
    2. ask the policy whether the actor may act (Unauthorized)
    3. resolve the transition from the state machine (InvalidTransition)
    4. validate arguments (InvalidArgument)
    5. compare-and-set the shipment row, bump its version, write bids and
       the status-history row, commit
    6. emit notifications (after commit, failures only logged)

Any error before the commit rolls the whole transaction back. The engine
never retries; a lost compare-and-set surfaces as ConcurrencyConflict and
the caller decides (see copallet.core.retry).
"""

import logging
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from copallet.auth.actor_auth import Actor
from copallet.core.database import get_session_context
from copallet.core.errors import ConcurrencyConflict, InvalidArgument, InvalidTransition, NotFound
from copallet.models.history import ShipmentStatusChange
from copallet.models.shipment import (
    POD_REFERENCE_MAX_LENGTH,
    Bid,
    BidStatus,
    Shipment,
    ShipmentStatus,
    UserRole,
)
from copallet.services.notification_service import LifecycleEvent, NotificationService
from copallet.services.policy import PolicyAction, authorize, is_allowed
from copallet.services.shipment_store import ShipmentStore
from copallet.services.state_machine import (
    LifecycleAction,
    next_status,
    require_open_for_bidding,
)

logger = logging.getLogger(__name__)

REQUIRED_PAYLOAD_FIELDS = ("from_address", "to_address", "pickup_window", "delivery_window", "pallets")
OPTIONAL_PAYLOAD_FIELDS = ("constraints", "price_guidance", "adr_required", "notes")

# Numeric(10, 2)
_MAX_PRICE = Decimal("99999999.99")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_price(price: Union[Decimal, int, float, str]) -> Decimal:
    try:
        value = price if isinstance(price, Decimal) else Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise InvalidArgument("CPL-BID-004", detail=f"price {price!r} is not a number")
    if not value.is_finite() or value <= 0 or value > _MAX_PRICE:
        raise InvalidArgument("CPL-BID-004", detail=f"price {price!r} out of range")
    if value.as_tuple().exponent < -2:
        raise InvalidArgument("CPL-BID-004", detail=f"price {price!r} has more than 2 decimals")
    return value


class LifecycleEngine:
    """Shipment lifecycle and bidding operations."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager] = get_session_context,
        notifier: Optional[NotificationService] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier or NotificationService(session_factory=session_factory)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load_bid(store: ShipmentStore, shipment: Shipment, bid_id: str) -> Bid:
        bid = store.get_bid(bid_id)
        if bid is None or bid.shipment_id != shipment.id:
            raise NotFound(
                "CPL-BID-404",
                detail=f"bid {bid_id} not found on shipment {shipment.id}",
                context={"shipment_id": shipment.id, "bid_id": bid_id},
            )
        return bid

    @staticmethod
    def _require_pending(bid: Bid) -> None:
        if bid.status != BidStatus.PENDING.value:
            raise InvalidTransition(
                "CPL-BID-001",
                detail=f"bid {bid.id} is {bid.status}",
                context={"bid_id": bid.id, "bid_status": bid.status},
            )

    @staticmethod
    def _apply(
        store: ShipmentStore,
        shipment: Shipment,
        target: ShipmentStatus,
        action: LifecycleAction,
        actor: Actor,
        **values: Any,
    ) -> None:
        """Compare-and-set the new status and record it in the history."""
        from_status = shipment.status
        store.compare_and_set(shipment, status=target.value, **values)
        store.record_transition(shipment.id, from_status, target.value, action.value, actor.user_id)
        logger.info(
            "Shipment %s %s -> %s (%s by %s)",
            shipment.id,
            from_status,
            target.value,
            action.value,
            actor.user_id,
        )

    def _emit(self, events: List[LifecycleEvent]) -> None:
        self._notifier.emit(events)

    # ------------------------------------------------------------------
    # Shipments
    # ------------------------------------------------------------------

    def create_shipment(self, actor: Actor, payload: Mapping[str, Any]) -> Shipment:
        """Create a draft shipment owned by *actor*."""
        authorize(PolicyAction.CREATE_SHIPMENT, actor)

        missing = [name for name in REQUIRED_PAYLOAD_FIELDS if not payload.get(name)]
        if missing:
            raise InvalidArgument(
                "CPL-API-002",
                detail=f"missing shipment fields: {', '.join(missing)}",
                context={"missing": missing},
            )

        fields: Dict[str, Any] = {name: payload[name] for name in REQUIRED_PAYLOAD_FIELDS}
        for name in OPTIONAL_PAYLOAD_FIELDS:
            if payload.get(name) is not None:
                fields[name] = payload[name]

        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.insert(
                Shipment(shipper_id=actor.user_id, status=ShipmentStatus.DRAFT.value, **fields)
            )
            store.record_transition(shipment.id, None, ShipmentStatus.DRAFT.value, "create", actor.user_id)
            session.commit()
            session.refresh(shipment)

        logger.info("Shipment %s created by %s", shipment.id, actor.user_id)
        return shipment

    def publish(self, shipment_id: str, actor: Actor) -> Shipment:
        """draft -> open."""
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.lock(shipment_id)
            authorize(PolicyAction.PUBLISH, actor, shipment)
            target = next_status(shipment.status, LifecycleAction.PUBLISH)

            self._apply(store, shipment, target, LifecycleAction.PUBLISH, actor)
            session.commit()
            session.refresh(shipment)
        return shipment

    def start_transit(self, shipment_id: str, actor: Actor) -> Shipment:
        """assigned -> in-transit; assigned carrier or admin."""
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.lock(shipment_id)
            authorize(PolicyAction.START_TRANSIT, actor, shipment)
            target = next_status(shipment.status, LifecycleAction.START_TRANSIT)

            self._apply(store, shipment, target, LifecycleAction.START_TRANSIT, actor)
            session.commit()
            session.refresh(shipment)

        self._emit([
            LifecycleEvent(
                type="shipment_in_transit",
                user_id=shipment.shipper_id,
                title="Shipment picked up",
                message="Your shipment is on its way.",
                data={"shipment_id": shipment.id, "carrier_id": shipment.assigned_carrier_id},
            )
        ])
        return shipment

    def mark_delivered(self, shipment_id: str, actor: Actor, pod_reference: str) -> Shipment:
        """in-transit -> delivered; assigned carrier only, proof of delivery required."""
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.lock(shipment_id)
            authorize(PolicyAction.MARK_DELIVERED, actor, shipment)
            target = next_status(shipment.status, LifecycleAction.MARK_DELIVERED)

            pod_reference = (pod_reference or "").strip()
            if not pod_reference:
                raise InvalidArgument(
                    "CPL-API-001",
                    detail="proof of delivery reference is required",
                    context={"shipment_id": shipment.id},
                )
            if len(pod_reference) > POD_REFERENCE_MAX_LENGTH:
                raise InvalidArgument(
                    "CPL-API-001",
                    detail=f"proof of delivery reference exceeds {POD_REFERENCE_MAX_LENGTH} characters",
                    context={"shipment_id": shipment.id, "length": len(pod_reference)},
                )

            self._apply(store, shipment, target, LifecycleAction.MARK_DELIVERED, actor,
                        pod_reference=pod_reference)
            session.commit()
            session.refresh(shipment)

        self._emit([
            LifecycleEvent(
                type="delivery_complete",
                user_id=shipment.shipper_id,
                title="Shipment delivered",
                message="Your shipment has been delivered.",
                data={"shipment_id": shipment.id, "pod_reference": shipment.pod_reference},
            )
        ])
        return shipment

    def cancel(self, shipment_id: str, actor: Actor) -> Shipment:
        """
        draft/open/assigned -> cancelled; owner or admin.

        Pending bids and the accepted bid (if any) are declined and the
        carrier assignment is cleared in the same transaction.
        """
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.lock(shipment_id)
            authorize(PolicyAction.CANCEL, actor, shipment)
            target = next_status(shipment.status, LifecycleAction.CANCEL)

            self._apply(store, shipment, target, LifecycleAction.CANCEL, actor,
                        assigned_carrier_id=None, assigned_at=None)
            live_bids = [
                bid for bid in store.bids_for_shipment(shipment.id)
                if bid.status in (BidStatus.PENDING.value, BidStatus.ACCEPTED.value)
            ]
            affected = [(bid.id, bid.carrier_id) for bid in live_bids]
            store.set_bid_status([bid_id for bid_id, _ in affected], BidStatus.DECLINED)
            session.commit()
            session.refresh(shipment)

        carriers = sorted({carrier_id for _, carrier_id in affected})
        self._emit([
            LifecycleEvent(
                type="shipment_cancelled",
                user_id=carrier_id,
                title="Shipment cancelled",
                message="A shipment you bid on was cancelled by the shipper.",
                data={"shipment_id": shipment.id},
            )
            for carrier_id in carriers
        ])
        return shipment

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------

    def place_bid(
        self,
        shipment_id: str,
        actor: Actor,
        price: Union[Decimal, int, float, str],
        eta_pickup: Optional[datetime] = None,
        message: Optional[str] = None,
    ) -> Bid:
        """Create a pending bid on an open shipment."""
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.lock(shipment_id)
            authorize(PolicyAction.PLACE_BID, actor, shipment)
            require_open_for_bidding(shipment.status)

            amount = _coerce_price(price)
            if actor.user_id == shipment.shipper_id:
                raise InvalidArgument(
                    "CPL-BID-002",
                    detail=f"{actor.user_id} owns shipment {shipment.id}",
                    context={"shipment_id": shipment.id},
                )
            if store.has_pending_bid(shipment.id, actor.user_id):
                raise InvalidArgument(
                    "CPL-BID-003",
                    detail=f"{actor.user_id} already has a pending bid on {shipment.id}",
                    context={"shipment_id": shipment.id, "carrier_id": actor.user_id},
                )

            # Bumps the version so a racing accept or cancel loses its CAS
            store.compare_and_set(shipment)
            bid = store.insert_bid(
                Bid(
                    shipment_id=shipment.id,
                    carrier_id=actor.user_id,
                    price=amount,
                    eta_pickup=eta_pickup,
                    message=message,
                    status=BidStatus.PENDING.value,
                )
            )
            shipper_id = shipment.shipper_id
            session.commit()
            session.refresh(bid)

        logger.info("Bid %s placed on shipment %s by %s", bid.id, shipment_id, actor.user_id)
        self._emit([
            LifecycleEvent(
                type="bid_received",
                user_id=shipper_id,
                title="New bid received",
                message=f"A carrier offered {bid.price} for your shipment.",
                data={"shipment_id": shipment_id, "bid_id": bid.id, "price": str(bid.price)},
            )
        ])
        return bid

    def accept_bid(self, shipment_id: str, bid_id: str, actor: Actor) -> Tuple[Shipment, Bid]:
        """
        Accept one pending bid on an open shipment.

        In one transaction: the bid becomes accepted, every other pending bid
        of the shipment is declined, and the shipment moves to assigned with
        the bid's carrier.
        """
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.lock(shipment_id)
            bid = self._load_bid(store, shipment, bid_id)
            authorize(PolicyAction.ACCEPT_BID, actor, shipment)
            target = next_status(shipment.status, LifecycleAction.ACCEPT_BID)
            self._require_pending(bid)

            self._apply(store, shipment, target, LifecycleAction.ACCEPT_BID, actor,
                        assigned_carrier_id=bid.carrier_id, assigned_at=_utcnow())
            losing = [
                (other.id, other.carrier_id)
                for other in store.bids_for_shipment(shipment.id, status=BidStatus.PENDING.value)
                if other.id != bid.id
            ]
            store.set_bid_status([bid.id], BidStatus.ACCEPTED)
            store.set_bid_status([other_id for other_id, _ in losing], BidStatus.DECLINED)
            if store.count_accepted(shipment.id) != 1:
                raise ConcurrencyConflict(
                    detail=f"shipment {shipment.id} would carry more than one accepted bid",
                    context={"shipment_id": shipment.id, "bid_id": bid.id},
                )
            session.commit()
            session.refresh(shipment)
            session.refresh(bid)

        events = [
            LifecycleEvent(
                type="bid_accepted",
                user_id=bid.carrier_id,
                title="Bid accepted",
                message="Your bid was accepted. The shipment is assigned to you.",
                data={"shipment_id": shipment.id, "bid_id": bid.id, "price": str(bid.price)},
            ),
            LifecycleEvent(
                type="shipment_assigned",
                user_id=shipment.shipper_id,
                title="Shipment assigned",
                message="You accepted a bid; a carrier is now assigned.",
                data={"shipment_id": shipment.id, "bid_id": bid.id, "carrier_id": bid.carrier_id},
            ),
        ]
        events.extend(
            LifecycleEvent(
                type="bid_declined",
                user_id=carrier_id,
                title="Bid declined",
                message="Another bid was accepted for this shipment.",
                data={"shipment_id": shipment.id, "bid_id": other_id},
            )
            for other_id, carrier_id in losing
        )
        self._emit(events)
        return shipment, bid

    def decline_bid(self, shipment_id: str, bid_id: str, actor: Actor) -> Bid:
        """Owner declines one pending bid while the shipment is open."""
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.lock(shipment_id)
            bid = self._load_bid(store, shipment, bid_id)
            authorize(PolicyAction.DECLINE_BID, actor, shipment)
            require_open_for_bidding(shipment.status)
            self._require_pending(bid)

            store.compare_and_set(shipment)
            store.set_bid_status([bid.id], BidStatus.DECLINED)
            session.commit()
            session.refresh(bid)

        logger.info("Bid %s on shipment %s declined by %s", bid_id, shipment_id, actor.user_id)
        self._emit([
            LifecycleEvent(
                type="bid_declined",
                user_id=bid.carrier_id,
                title="Bid declined",
                message="The shipper declined your bid.",
                data={"shipment_id": shipment_id, "bid_id": bid.id},
            )
        ])
        return bid

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_shipment(self, shipment_id: str) -> Shipment:
        with self._session_factory() as session:
            return ShipmentStore(session).get(shipment_id)

    def list_shipments(
        self,
        actor: Actor,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Shipment]:
        """Shippers see their own shipments, admins all, carriers the open board."""
        with self._session_factory() as session:
            store = ShipmentStore(session)
            if actor.role == UserRole.SHIPPER:
                return store.list_shipments(shipper_id=actor.user_id, status=status,
                                            limit=limit, offset=offset)
            if actor.is_admin:
                return store.list_shipments(status=status, limit=limit, offset=offset)
            return store.list_shipments(status=ShipmentStatus.OPEN.value, limit=limit, offset=offset)

    def list_bids(self, shipment_id: str, actor: Actor) -> List[Bid]:
        """All bids for the owner or an admin; a carrier only sees its own."""
        with self._session_factory() as session:
            store = ShipmentStore(session)
            shipment = store.get(shipment_id)
            if is_allowed(PolicyAction.VIEW_ALL_BIDS, actor, shipment):
                return store.bids_for_shipment(shipment.id)
            return store.bids_for_shipment(shipment.id, carrier_id=actor.user_id)

    def list_actor_bids(self, actor: Actor, status: Optional[str] = None) -> List[Bid]:
        """
        The actor's bid inbox: shippers get every bid on their own shipments,
        admins all bids, carriers and dispatchers the bids they placed.
        """
        with self._session_factory() as session:
            store = ShipmentStore(session)
            if actor.role == UserRole.SHIPPER:
                return store.bids_for_shipper(actor.user_id, status=status)
            if actor.is_admin:
                return store.all_bids(status=status)
            return store.bids_for_carrier(actor.user_id, status=status)

    def history(self, shipment_id: str) -> List[ShipmentStatusChange]:
        with self._session_factory() as session:
            store = ShipmentStore(session)
            store.get(shipment_id)
            return store.history(shipment_id)


_lifecycle_engine: Optional[LifecycleEngine] = None


def get_lifecycle_engine() -> LifecycleEngine:
    """Get or create the lifecycle engine singleton."""
    global _lifecycle_engine
    if _lifecycle_engine is None:
        _lifecycle_engine = LifecycleEngine()
    return _lifecycle_engine
