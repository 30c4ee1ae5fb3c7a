"""
Notification Model
==================

In-app notification store. Rows are written by the notification service
after a lifecycle transition commits; delivery beyond this table (email,
push) is somebody else's job.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlmodel import JSON, Column, Field, SQLModel

from copallet.models.shipment import USER_ID_MAX_LENGTH


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36
    )
    user_id: str = Field(index=True, max_length=USER_ID_MAX_LENGTH)
    type: str = Field(index=True, max_length=50)  # bid_accepted, bid_declined, shipment_assigned, ...
    title: str = Field(max_length=255)
    message: str
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    is_read: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
