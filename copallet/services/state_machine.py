"""
Shipment State Machine
======================

The one authoritative shipment transition table.

    draft -> open            (publish)
    open -> assigned         (accept_bid)
    open -> cancelled        (cancel)
    draft -> cancelled       (cancel)
    assigned -> in-transit   (start_transit)
    assigned -> cancelled    (cancel)
    in-transit -> delivered  (mark_delivered)

Delivered and cancelled are terminal. Pure computation only: persistence,
locking and history rows are handled by the lifecycle engine.
"""

from enum import Enum
from typing import Dict, Set, Tuple, Union

from copallet.core.errors import InvalidTransition
from copallet.models.shipment import ShipmentStatus


class LifecycleAction(str, Enum):
    """Status-changing operations of the lifecycle engine."""
    PUBLISH = "publish"
    ACCEPT_BID = "accept_bid"
    START_TRANSIT = "start_transit"
    MARK_DELIVERED = "mark_delivered"
    CANCEL = "cancel"


# {(from_status, action): to_status}
_TRANSITIONS: Dict[Tuple[ShipmentStatus, LifecycleAction], ShipmentStatus] = {
    (ShipmentStatus.DRAFT, LifecycleAction.PUBLISH): ShipmentStatus.OPEN,
    (ShipmentStatus.OPEN, LifecycleAction.ACCEPT_BID): ShipmentStatus.ASSIGNED,
    (ShipmentStatus.OPEN, LifecycleAction.CANCEL): ShipmentStatus.CANCELLED,
    (ShipmentStatus.DRAFT, LifecycleAction.CANCEL): ShipmentStatus.CANCELLED,
    (ShipmentStatus.ASSIGNED, LifecycleAction.START_TRANSIT): ShipmentStatus.IN_TRANSIT,
    (ShipmentStatus.ASSIGNED, LifecycleAction.CANCEL): ShipmentStatus.CANCELLED,
    (ShipmentStatus.IN_TRANSIT, LifecycleAction.MARK_DELIVERED): ShipmentStatus.DELIVERED,
}

TERMINAL_STATES: Set[ShipmentStatus] = {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}

# Position along the forward chain; cancelled sits outside it.
_FORWARD_ORDER = {
    ShipmentStatus.DRAFT: 0,
    ShipmentStatus.OPEN: 1,
    ShipmentStatus.ASSIGNED: 2,
    ShipmentStatus.IN_TRANSIT: 3,
    ShipmentStatus.DELIVERED: 4,
}


def _as_status(status: Union[str, ShipmentStatus]) -> ShipmentStatus:
    return status if isinstance(status, ShipmentStatus) else ShipmentStatus(status)


def next_status(current: Union[str, ShipmentStatus], action: LifecycleAction) -> ShipmentStatus:
    """
    Resolve the status *action* moves a shipment to from *current*.

    Raises:
        InvalidTransition: the action is not legal from *current*.
    """
    current = _as_status(current)
    target = _TRANSITIONS.get((current, action))
    if target is None:
        code = "CPL-SHP-002" if action == LifecycleAction.ACCEPT_BID else "CPL-SHP-001"
        raise InvalidTransition(
            code,
            detail=f"cannot {action.value} a shipment in status {current.value}",
            context={
                "from_status": current.value,
                "action": action.value,
                "allowed_actions": sorted(a.value for a in valid_actions(current)),
            },
        )
    return target


def valid_actions(current: Union[str, ShipmentStatus]) -> Set[LifecycleAction]:
    """Actions that are legal from *current* (empty for terminal states)."""
    current = _as_status(current)
    return {action for (state, action) in _TRANSITIONS if state == current}


def valid_targets(current: Union[str, ShipmentStatus]) -> Set[ShipmentStatus]:
    current = _as_status(current)
    return {target for (state, _), target in _TRANSITIONS.items() if state == current}


def is_terminal(status: Union[str, ShipmentStatus]) -> bool:
    return _as_status(status) in TERMINAL_STATES


def require_open_for_bidding(current: Union[str, ShipmentStatus]) -> None:
    """Bids are placed and declined only while the shipment is open."""
    current = _as_status(current)
    if current != ShipmentStatus.OPEN:
        raise InvalidTransition(
            "CPL-SHP-002",
            detail=f"shipment is {current.value}, bidding requires open",
            context={"from_status": current.value},
        )


def is_valid_walk(statuses) -> bool:
    """
    True if *statuses* (oldest first, creation included) is a path through
    the transition table: every step is one table edge, starting at draft.
    """
    walk = [_as_status(s) for s in statuses]
    if not walk:
        return True
    if walk[0] != ShipmentStatus.DRAFT:
        return False
    for previous, current in zip(walk, walk[1:]):
        if current not in valid_targets(previous):
            return False
        if current != ShipmentStatus.CANCELLED and _FORWARD_ORDER[current] != _FORWARD_ORDER[previous] + 1:
            return False
    return True
