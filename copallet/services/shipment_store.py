"""
Shipment Store
==============

Persistence primitives for the lifecycle engine, bound to one session
(one transaction per engine operation).

Write discipline:
    1. ``lock`` loads the shipment row with SELECT ... FOR UPDATE
       (row lock on PostgreSQL, no-op on SQLite).
    2. ``compare_and_set`` writes it back through
           UPDATE shipments SET ..., version = version + 1
           WHERE id = :id AND version = :read_version AND status = :read_status
       and raises ConcurrencyConflict when no row matched.
    3. Bid status changes are plain Core updates issued after the
       compare-and-set, while the shipment write is held.

Writes go through the session's connection so the ORM identity map never
flushes a stale shipment over a conditional update. Callers commit, or let
the session context roll back on error.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from copallet.core.errors import ConcurrencyConflict, NotFound
from copallet.models.history import ShipmentStatusChange
from copallet.models.shipment import Bid, BidStatus, Shipment

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShipmentStore:
    """Row-level access to shipments, bids and status history."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Shipments
    # ------------------------------------------------------------------

    def get(self, shipment_id: str) -> Shipment:
        shipment = self.session.get(Shipment, shipment_id)
        if shipment is None:
            raise NotFound("CPL-SHP-404", detail=f"shipment {shipment_id} not found",
                           context={"shipment_id": shipment_id})
        return shipment

    def lock(self, shipment_id: str) -> Shipment:
        """Load the shipment for update, always re-reading the row."""
        stmt = (
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        shipment = self.session.exec(stmt).first()
        if shipment is None:
            raise NotFound("CPL-SHP-404", detail=f"shipment {shipment_id} not found",
                           context={"shipment_id": shipment_id})
        return shipment

    def insert(self, shipment: Shipment) -> Shipment:
        self.session.add(shipment)
        self.session.flush()
        return shipment

    def compare_and_set(self, shipment: Shipment, **values) -> int:
        """
        Conditionally write *values* onto the shipment row.

        The row must still carry the version and status *shipment* was read
        with. Returns the new version.

        Raises:
            ConcurrencyConflict: the row changed (or the database refused the
                write lock) since it was read.
        """
        t = Shipment.__table__
        stmt = (
            t.update()
            .where(t.c.id == shipment.id)
            .where(t.c.version == shipment.version)
            .where(t.c.status == shipment.status)
            .values(version=t.c.version + 1, updated_at=_utcnow(), **values)
        )
        try:
            result = self.session.connection().execute(stmt)
        except OperationalError as exc:
            if "database is locked" not in str(exc).lower():
                raise
            raise ConcurrencyConflict(
                detail=f"write lock unavailable for shipment {shipment.id}",
                context={"shipment_id": shipment.id},
            ) from exc

        if result.rowcount != 1:
            logger.warning(
                "Conditional update missed shipment %s (read version %d, status %s)",
                shipment.id,
                shipment.version,
                shipment.status,
            )
            raise ConcurrencyConflict(
                detail=f"shipment {shipment.id} changed since version {shipment.version}",
                context={"shipment_id": shipment.id, "read_version": shipment.version},
            )
        return shipment.version + 1

    def list_shipments(
        self,
        shipper_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Shipment]:
        stmt = select(Shipment)
        if shipper_id is not None:
            stmt = stmt.where(Shipment.shipper_id == shipper_id)
        if status is not None:
            stmt = stmt.where(Shipment.status == status)
        stmt = stmt.order_by(Shipment.created_at.desc()).offset(offset).limit(limit)
        return list(self.session.exec(stmt).all())

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------

    def get_bid(self, bid_id: str) -> Optional[Bid]:
        return self.session.exec(
            select(Bid).where(Bid.id == bid_id).execution_options(populate_existing=True)
        ).first()

    def insert_bid(self, bid: Bid) -> Bid:
        self.session.add(bid)
        self.session.flush()
        return bid

    def bids_for_shipment(
        self,
        shipment_id: str,
        carrier_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Bid]:
        stmt = select(Bid).where(Bid.shipment_id == shipment_id)
        if carrier_id is not None:
            stmt = stmt.where(Bid.carrier_id == carrier_id)
        if status is not None:
            stmt = stmt.where(Bid.status == status)
        stmt = stmt.order_by(Bid.created_at.asc()).execution_options(populate_existing=True)
        return list(self.session.exec(stmt).all())

    def bids_for_carrier(self, carrier_id: str, status: Optional[str] = None) -> List[Bid]:
        stmt = select(Bid).where(Bid.carrier_id == carrier_id)
        if status is not None:
            stmt = stmt.where(Bid.status == status)
        return list(self.session.exec(stmt.order_by(Bid.created_at.desc())).all())

    def bids_for_shipper(self, shipper_id: str, status: Optional[str] = None) -> List[Bid]:
        """Bids on any shipment owned by *shipper_id*, newest first."""
        stmt = (
            select(Bid)
            .join(Shipment, Shipment.id == Bid.shipment_id)
            .where(Shipment.shipper_id == shipper_id)
        )
        if status is not None:
            stmt = stmt.where(Bid.status == status)
        return list(self.session.exec(stmt.order_by(Bid.created_at.desc())).all())

    def all_bids(self, status: Optional[str] = None, limit: int = 500) -> List[Bid]:
        stmt = select(Bid)
        if status is not None:
            stmt = stmt.where(Bid.status == status)
        return list(self.session.exec(stmt.order_by(Bid.created_at.desc()).limit(limit)).all())

    def has_pending_bid(self, shipment_id: str, carrier_id: str) -> bool:
        return bool(self.bids_for_shipment(shipment_id, carrier_id=carrier_id,
                                           status=BidStatus.PENDING.value))

    def set_bid_status(self, bid_ids: Iterable[str], status: BidStatus) -> int:
        ids: Sequence[str] = list(bid_ids)
        if not ids:
            return 0
        t = Bid.__table__
        result = self.session.connection().execute(
            t.update()
            .where(t.c.id.in_(ids))
            .values(status=status.value, updated_at=_utcnow())
        )
        return result.rowcount

    def count_accepted(self, shipment_id: str) -> int:
        t = Bid.__table__
        return self.session.connection().execute(
            sa.select(sa.func.count())
            .select_from(t)
            .where(t.c.shipment_id == shipment_id)
            .where(t.c.status == BidStatus.ACCEPTED.value)
        ).scalar_one()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def record_transition(
        self,
        shipment_id: str,
        from_status: Optional[str],
        to_status: str,
        action: str,
        actor_id: str,
    ) -> ShipmentStatusChange:
        row = ShipmentStatusChange(
            shipment_id=shipment_id,
            from_status=from_status,
            to_status=to_status,
            action=action,
            actor_id=actor_id,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def history(self, shipment_id: str) -> List[ShipmentStatusChange]:
        stmt = (
            select(ShipmentStatusChange)
            .where(ShipmentStatusChange.shipment_id == shipment_id)
            .order_by(ShipmentStatusChange.id.asc())
        )
        return list(self.session.exec(stmt).all())
