"""
Order Status State Machine

Single source of truth for order status transitions:

    pending -> confirmed -> preparing -> ready -> out_for_delivery -> delivered

``cancelled`` can be reached from any non-terminal status. ``delivered``
and ``cancelled`` are terminal. Every entry point that changes a status
(admin advance/cancel, generic status update, payment confirmation) goes
through ``validate_transition``.

Also derives the customer-facing tracker: five display stages with
estimated stage times spaced a fixed number of minutes apart. Those times
are a display estimate, not recorded facts.

Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from app.core.exceptions import InvalidStatusError, InvalidStatusTransition
from app.models import OrderStatus, as_utc

logger = logging.getLogger(__name__)

VALID_STATUSES: frozenset[str] = frozenset(s.value for s in OrderStatus)

TERMINAL_STATUSES: frozenset[str] = frozenset({
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
})

# Admin "advance" table: exactly one stage forward
NEXT_STATUS: dict[str, str] = {
    OrderStatus.PENDING.value: OrderStatus.CONFIRMED.value,
    OrderStatus.CONFIRMED.value: OrderStatus.PREPARING.value,
    OrderStatus.PREPARING.value: OrderStatus.READY.value,
    OrderStatus.READY.value: OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.OUT_FOR_DELIVERY.value: OrderStatus.DELIVERED.value,
}

# Stages shown by the customer tracker ("ready" is not displayed)
TRACKER_STAGES: tuple[tuple[str, str], ...] = (
    (OrderStatus.PENDING.value, "Order received"),
    (OrderStatus.CONFIRMED.value, "Confirmed"),
    (OrderStatus.PREPARING.value, "Preparing"),
    (OrderStatus.OUT_FOR_DELIVERY.value, "Out for delivery"),
    (OrderStatus.DELIVERED.value, "Delivered"),
)

STATUS_LABELS: dict[str, str] = {
    OrderStatus.PENDING.value: "Pending",
    OrderStatus.CONFIRMED.value: "Confirmed",
    OrderStatus.PREPARING.value: "Preparing",
    OrderStatus.READY.value: "Ready",
    OrderStatus.OUT_FOR_DELIVERY.value: "Out for delivery",
    OrderStatus.DELIVERED.value: "Delivered",
    OrderStatus.CANCELLED.value: "Cancelled",
}

STATUS_MESSAGES: dict[str, str] = {
    OrderStatus.PENDING.value: "Waiting for the restaurant to confirm",
    OrderStatus.CONFIRMED.value: "Order confirmed and queued for the kitchen",
    OrderStatus.PREPARING.value: "Your order is being prepared",
    OrderStatus.OUT_FOR_DELIVERY.value: "The courier is on the way",
}


# =============================================================================
# TRANSITIONS
# =============================================================================

def parse_status(value: object) -> str:
    """Return ``value`` as a known status string or raise InvalidStatusError."""
    if isinstance(value, OrderStatus):
        return value.value
    if not isinstance(value, str) or value not in VALID_STATUSES:
        raise InvalidStatusError()
    return value


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def next_status(status: str) -> str:
    """
    Next stage of the advance table.

    Terminal and unknown statuses map to themselves, so advancing a
    delivered or cancelled order is a no-op.
    """
    return NEXT_STATUS.get(status, status)


def can_advance(status: str) -> bool:
    return status in NEXT_STATUS


def can_cancel(status: str) -> bool:
    return status in VALID_STATUSES and not is_terminal(status)


def is_allowed_transition(current: str, target: str) -> bool:
    """Transition check without the force escape hatch."""
    if target == current:
        return True
    if target == OrderStatus.CANCELLED.value:
        return can_cancel(current)
    return NEXT_STATUS.get(current) == target


def validate_transition(current: str, target: str, force: bool = False) -> str:
    """
    Validate a status change and return the target status.

    Args:
        current: Stored status
        target: Requested status (must be one of the seven known values)
        force: Skip the transition table (admin correction path)

    Raises:
        InvalidStatusError: ``target`` is not a known status
        InvalidStatusTransition: ``target`` is not reachable from ``current``
    """
    target = parse_status(target)

    if force:
        if not is_allowed_transition(current, target):
            logger.warning(f"Forced status change {current} -> {target}")
        return target

    if not is_allowed_transition(current, target):
        logger.warning(f"Rejected status change {current} -> {target}")
        raise InvalidStatusTransition(current, target)

    return target


# =============================================================================
# TRACKER VIEW
# =============================================================================

@dataclass
class TrackerStage:
    key: str
    label: str
    completed: bool
    current: bool
    estimated_at: Optional[datetime] = None


@dataclass
class TrackerView:
    """Display model for the order progress tracker."""
    status: str
    label: str
    current_index: int
    message: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    stages: list[TrackerStage] = field(default_factory=list)

    @property
    def is_mapped(self) -> bool:
        """False for statuses shown only as a badge (cancelled, ready, unknown)."""
        return self.current_index >= 0


def estimated_delivery_at(
    created_at: datetime,
    estimated_delivery_time: Optional[int],
) -> Optional[datetime]:
    if not estimated_delivery_time:
        return None
    return as_utc(created_at) + timedelta(minutes=estimated_delivery_time)


def build_tracker(
    status: str,
    created_at: datetime,
    estimated_delivery_time: Optional[int] = None,
    step_minutes: int = 10,
) -> TrackerView:
    """
    Derive the tracker view from the stored status and creation time.

    Args:
        status: Stored order status
        created_at: Order creation timestamp
        estimated_delivery_time: Delivery estimate in minutes, if any
        step_minutes: Spacing between estimated stage times

    Returns:
        TrackerView with one entry per display stage
    """
    keys = [key for key, _ in TRACKER_STAGES]
    current_index = keys.index(status) if status in keys else -1
    created_at = as_utc(created_at)

    stages = []
    for index, (key, label) in enumerate(TRACKER_STAGES):
        reached = 0 <= index <= current_index
        stages.append(TrackerStage(
            key=key,
            label=label,
            completed=reached,
            current=index == current_index,
            estimated_at=created_at + timedelta(minutes=index * step_minutes) if reached else None,
        ))

    estimated = None
    if status != OrderStatus.DELIVERED.value:
        estimated = estimated_delivery_at(created_at, estimated_delivery_time)

    return TrackerView(
        status=status,
        label=STATUS_LABELS.get(status, status),
        current_index=current_index,
        message=STATUS_MESSAGES.get(status),
        estimated_delivery=estimated,
        stages=stages,
    )
