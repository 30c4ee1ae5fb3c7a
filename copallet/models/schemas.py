"""
Request / response models for the shipment API.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from copallet.models.shipment import POD_REFERENCE_MAX_LENGTH
from copallet.services.state_machine import is_terminal, valid_actions


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ShipmentCreateRequest(BaseModel):
    """Descriptive payload of a new shipment."""
    from_address: Dict[str, Any] = Field(..., description="Pickup address (street, city, postalCode, country, lat/lng)")
    to_address: Dict[str, Any] = Field(..., description="Delivery address")
    pickup_window: Dict[str, Any] = Field(..., description="{start, end}")
    delivery_window: Dict[str, Any] = Field(..., description="{start, end}")
    pallets: Dict[str, Any] = Field(..., description="{quantity, dimensions, weight}")
    constraints: Optional[Dict[str, Any]] = Field(None, description="Tail lift, forklift, indoor delivery, appointment")
    price_guidance: Optional[Dict[str, Any]] = Field(None, description="{min, max}")
    adr_required: bool = False
    notes: Optional[str] = Field(None, max_length=4000)


class BidCreateRequest(BaseModel):
    # Positivity is checked by the engine so it reports a registry error
    price: Decimal = Field(..., description="Offered price")
    eta_pickup: Optional[datetime] = None
    message: Optional[str] = Field(None, max_length=2000)


class DeliverRequest(BaseModel):
    pod_reference: str = Field(..., min_length=1, max_length=POD_REFERENCE_MAX_LENGTH, description="Proof-of-delivery record id")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ShipmentRead(BaseModel):
    id: str
    shipper_id: str
    status: str
    assigned_carrier_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    from_address: Dict[str, Any]
    to_address: Dict[str, Any]
    pickup_window: Dict[str, Any]
    delivery_window: Dict[str, Any]
    pallets: Dict[str, Any]
    constraints: Optional[Dict[str, Any]] = None
    price_guidance: Optional[Dict[str, Any]] = None
    adr_required: bool = False
    notes: Optional[str] = None
    pod_reference: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    # Derived from status via the transition table
    allowed_actions: List[str] = Field(default_factory=list)
    terminal: bool = False

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def derive_lifecycle_fields(self):
        self.allowed_actions = sorted(action.value for action in valid_actions(self.status))
        self.terminal = is_terminal(self.status)
        return self


class BidRead(BaseModel):
    id: str
    shipment_id: str
    carrier_id: str
    price: Decimal
    eta_pickup: Optional[datetime] = None
    message: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ShipmentListResponse(BaseModel):
    shipments: List[ShipmentRead]
    count: int


class BidListResponse(BaseModel):
    bids: List[BidRead]
    count: int


class AcceptBidResponse(BaseModel):
    message: str = "Bid accepted successfully"
    shipment: ShipmentRead
    bid: BidRead


class StatusChangeRead(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    action: str
    actor_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class HistoryResponse(BaseModel):
    shipment_id: str
    history: List[StatusChangeRead]


class NotificationRead(BaseModel):
    id: str
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: List[NotificationRead]
    unread: int
