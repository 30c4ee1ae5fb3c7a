"""
Authorization Policy
====================

Single decision point for "may this actor perform this action on this
shipment". Every lifecycle operation consults ``authorize`` after the
shipment has been loaded and before any precondition on its status.

    create_shipment   role shipper
    publish           shipment owner
    place_bid         role carrier or dispatcher
    accept_bid        shipment owner
    decline_bid       shipment owner
    start_transit     assigned carrier, or admin
    mark_delivered    assigned carrier
    cancel            shipment owner, or admin
    view_all_bids     shipment owner, or admin
"""

import logging
from enum import Enum
from typing import Optional

from copallet.auth.actor_auth import Actor
from copallet.core.errors import Unauthorized
from copallet.models.shipment import Shipment, UserRole

logger = logging.getLogger(__name__)


class PolicyAction(str, Enum):
    CREATE_SHIPMENT = "create_shipment"
    PUBLISH = "publish"
    PLACE_BID = "place_bid"
    ACCEPT_BID = "accept_bid"
    DECLINE_BID = "decline_bid"
    START_TRANSIT = "start_transit"
    MARK_DELIVERED = "mark_delivered"
    CANCEL = "cancel"
    VIEW_ALL_BIDS = "view_all_bids"


_BIDDER_ROLES = {UserRole.CARRIER, UserRole.DISPATCHER}


def _is_owner(actor: Actor, shipment: Optional[Shipment]) -> bool:
    return shipment is not None and shipment.shipper_id == actor.user_id


def _is_assigned_carrier(actor: Actor, shipment: Optional[Shipment]) -> bool:
    return (
        shipment is not None
        and shipment.assigned_carrier_id is not None
        and shipment.assigned_carrier_id == actor.user_id
    )


def _check(action: PolicyAction, actor: Actor, shipment: Optional[Shipment]) -> Optional[str]:
    """Return the denial code for (action, actor, shipment), or None if allowed."""
    if action == PolicyAction.CREATE_SHIPMENT:
        return None if actor.role == UserRole.SHIPPER else "CPL-AUTH-002"
    if action == PolicyAction.PLACE_BID:
        return None if actor.role in _BIDDER_ROLES else "CPL-AUTH-002"
    if action in (PolicyAction.PUBLISH, PolicyAction.ACCEPT_BID, PolicyAction.DECLINE_BID):
        return None if _is_owner(actor, shipment) else "CPL-AUTH-001"
    if action == PolicyAction.START_TRANSIT:
        return None if _is_assigned_carrier(actor, shipment) or actor.is_admin else "CPL-AUTH-001"
    if action == PolicyAction.MARK_DELIVERED:
        return None if _is_assigned_carrier(actor, shipment) else "CPL-AUTH-001"
    if action in (PolicyAction.CANCEL, PolicyAction.VIEW_ALL_BIDS):
        return None if _is_owner(actor, shipment) or actor.is_admin else "CPL-AUTH-001"
    return "CPL-AUTH-001"


def is_allowed(action: PolicyAction, actor: Actor, shipment: Optional[Shipment] = None) -> bool:
    return _check(action, actor, shipment) is None


def authorize(action: PolicyAction, actor: Actor, shipment: Optional[Shipment] = None) -> None:
    """
    Raise Unauthorized unless *actor* may perform *action* on *shipment*.

    Args:
        action: The operation being attempted.
        actor: Authenticated caller.
        shipment: Target shipment (None only for create_shipment).
    """
    code = _check(action, actor, shipment)
    if code is None:
        return
    logger.info(
        "Denied %s for actor %s (%s)",
        action.value,
        actor.user_id,
        actor.role.value,
        extra={"shipment_id": shipment.id if shipment is not None else None},
    )
    raise Unauthorized(
        code,
        detail=f"{actor.role.value} {actor.user_id} may not {action.value}",
        context={
            "action": action.value,
            "actor_id": actor.user_id,
            "shipment_id": shipment.id if shipment is not None else None,
        },
    )
