"""
Shipment status rules: terminal states, the transition table used in strict
mode, and tracking number generation.
"""

import random
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from .models import ShipmentStatus
from .exceptions import TransitionRejected

TERMINAL_STATUSES: FrozenSet[ShipmentStatus] = frozenset(
    {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: Dict[ShipmentStatus, FrozenSet[ShipmentStatus]] = {
    ShipmentStatus.PENDING: frozenset({ShipmentStatus.PROCESSING, ShipmentStatus.CANCELLED}),
    ShipmentStatus.PROCESSING: frozenset({ShipmentStatus.SHIPPED, ShipmentStatus.CANCELLED}),
    ShipmentStatus.SHIPPED: frozenset({
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY,
        ShipmentStatus.DELIVERED,
        ShipmentStatus.RETURNED,
        ShipmentStatus.CANCELLED,
    }),
    ShipmentStatus.IN_TRANSIT: frozenset({
        ShipmentStatus.OUT_FOR_DELIVERY,
        ShipmentStatus.DELIVERED,
        ShipmentStatus.RETURNED,
        ShipmentStatus.CANCELLED,
    }),
    ShipmentStatus.OUT_FOR_DELIVERY: frozenset({
        ShipmentStatus.DELIVERED,
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.RETURNED,
        ShipmentStatus.CANCELLED,
    }),
    ShipmentStatus.RETURNED: frozenset({ShipmentStatus.PROCESSING}),
    ShipmentStatus.DELIVERED: frozenset(),
    ShipmentStatus.CANCELLED: frozenset(),
}

def utcnow() -> datetime:
    """Naive UTC now, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def is_terminal(status: ShipmentStatus) -> bool:
    return status in TERMINAL_STATUSES

def check_transition(current: ShipmentStatus, target: ShipmentStatus, strict: bool = False) -> None:
    """
    Raise TransitionRejected if ``current -> target`` is not accepted.

    Terminal statuses are absorbing in both modes. Strict mode additionally
    limits moves to ALLOWED_TRANSITIONS, while still letting a shipment be
    re-stated in its current status (location updates).
    """
    if is_terminal(current):
        raise TransitionRejected(
            f"Cannot change status of a {current.value.lower()} shipment"
        )
    if not strict or target == current:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise TransitionRejected(
            f"Invalid status transition {current.value} -> {target.value}"
        )

def generate_tracking_number(prefix: str = "SHP", now: Optional[datetime] = None) -> str:
    """Generate a tracking number in format <prefix><YYYYMMDDHHMMSS><NNNN>"""
    now = now or utcnow()
    return f"{prefix}{now.strftime('%Y%m%d%H%M%S')}{random.randint(1000, 9999)}"
