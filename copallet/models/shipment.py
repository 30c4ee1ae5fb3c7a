"""
Shipment & Bid Models
=====================

SQLModel tables for the freight marketplace core:
- Shipment: a freight job posted by a shipper, moved through its lifecycle
  only by copallet.services.lifecycle_engine
- Bid: a carrier's priced offer on an open shipment

Status columns are plain strings (matching the Alembic migration); the
enums below are the vocabulary code compares and writes with.

Shipment lifecycle: draft → open → assigned → in-transit → delivered,
                    draft/open/assigned → cancelled
Bid lifecycle:      pending → accepted | declined
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlmodel import JSON, Column, Field, SQLModel, Text

# Opaque ids issued by the authentication gateway
USER_ID_MAX_LENGTH = 128
POD_REFERENCE_MAX_LENGTH = 255


class ShipmentStatus(str, Enum):
    """Lifecycle state of a shipment."""
    DRAFT = "draft"
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class BidStatus(str, Enum):
    """Lifecycle state of a bid."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class UserRole(str, Enum):
    """Roles known to the marketplace."""
    SHIPPER = "shipper"
    CARRIER = "carrier"
    DISPATCHER = "dispatcher"
    ADMIN = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class TimestampMixin(SQLModel):
    """Mixin for created_at and updated_at timestamps."""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Shipment(TimestampMixin, table=True):
    """
    A single freight job.

    The descriptive payload (addresses, windows, pallets, constraints,
    price guidance) is opaque to the lifecycle engine. ``version`` is bumped
    on every engine write and serves as the compare-and-swap token.
    """

    __tablename__ = "shipments"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    shipper_id: str = Field(index=True, max_length=USER_ID_MAX_LENGTH)
    status: str = Field(default=ShipmentStatus.DRAFT.value, index=True, max_length=20)
    assigned_carrier_id: Optional[str] = Field(default=None, index=True, max_length=USER_ID_MAX_LENGTH)
    assigned_at: Optional[datetime] = Field(default=None, nullable=True)

    from_address: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    to_address: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    pickup_window: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    delivery_window: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    pallets: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    constraints: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    price_guidance: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    adr_required: bool = Field(default=False)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    pod_reference: Optional[str] = Field(default=None, max_length=POD_REFERENCE_MAX_LENGTH)
    version: int = Field(default=1)


class Bid(TimestampMixin, table=True):
    """A carrier's offer on an open shipment."""

    __tablename__ = "bids"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    shipment_id: str = Field(foreign_key="shipments.id", index=True, max_length=36)
    carrier_id: str = Field(index=True, max_length=USER_ID_MAX_LENGTH)
    price: Decimal = Field(max_digits=10, decimal_places=2)
    eta_pickup: Optional[datetime] = Field(default=None, nullable=True)
    message: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    status: str = Field(default=BidStatus.PENDING.value, index=True, max_length=20)
