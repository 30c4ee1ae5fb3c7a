"""
Shipment Status History
=======================

One row per successful lifecycle transition, written in the same
transaction as the transition itself. ``from_status`` is NULL for the
creation row.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

from copallet.models.shipment import USER_ID_MAX_LENGTH


class ShipmentStatusChange(SQLModel, table=True):
    __tablename__ = "shipment_status_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    shipment_id: str = Field(foreign_key="shipments.id", index=True, max_length=36)
    from_status: Optional[str] = Field(default=None, max_length=20)
    to_status: str = Field(max_length=20)
    action: str = Field(max_length=32)  # create, publish, accept_bid, ...
    actor_id: str = Field(max_length=USER_ID_MAX_LENGTH)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
