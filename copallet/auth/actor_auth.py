"""
Actor Identity
==============

Resolves the calling actor from headers set by the trusted authentication
gateway in front of this service:

    X-User-Id    — opaque user id
    X-User-Role  — shipper | carrier | dispatcher | admin

Token issuance and verification happen upstream; requests without both
headers (or with an unknown role) are rejected with 401.
"""

import logging

from fastapi import HTTPException, Request, status
from pydantic import BaseModel, Field

from copallet.core.structured_logging import actor_id_var
from copallet.models.shipment import USER_ID_MAX_LENGTH, UserRole

logger = logging.getLogger(__name__)


class Actor(BaseModel):
    """The authenticated caller of a lifecycle operation."""

    user_id: str = Field(..., min_length=1, max_length=USER_ID_MAX_LENGTH)
    role: UserRole

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_actor(request: Request) -> Actor:
    """Build the Actor from gateway headers; 401 if missing or malformed."""
    user_id = (request.headers.get("X-User-Id") or "").strip()
    role = (request.headers.get("X-User-Role") or "").strip().lower()

    if not user_id or not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id and X-User-Role headers are required.",
        )

    try:
        actor = Actor(user_id=user_id, role=UserRole(role))
    except ValueError:
        logger.info("Rejected actor headers: role=%r", role)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or malformed actor identity.",
        )

    request.state.actor = actor
    actor_id_var.set(actor.user_id)
    return actor
