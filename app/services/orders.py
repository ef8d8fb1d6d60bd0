"""
Order Service

Order queries for customers and the back office, status mutations and
the summary figures shown on the profile and admin dashboard.

Every status mutation:
    1. Validates the transition with app.services.order_status
    2. Updates the row only if its version still matches (compare-and-swap)
    3. Stamps updated_at and bumps the version

A lost compare-and-swap raises StaleOrderError; nothing is retried.

Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyPaidError,
    InvalidStatusTransition,
    OrderNotFoundError,
    StaleOrderError,
)
from app.models import Order, OrderStatus, PaymentStatus, as_utc, utc_now
from app.services.order_status import (
    TERMINAL_STATUSES,
    can_advance,
    can_cancel,
    next_status,
    validate_transition,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# =============================================================================
# QUERIES
# =============================================================================

async def load_order(
    db: AsyncSession,
    order_id: str,
    user_id: Optional[str] = None,
) -> Order:
    """
    Fetch one order with its joins, optionally scoped to its owner.

    Raises:
        OrderNotFoundError: Missing, or owned by someone else
    """
    query = (
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    if user_id is not None:
        query = query.where(Order.user_id == user_id)

    result = await db.execute(query)
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError()
    return order


async def list_user_orders(
    db: AsyncSession,
    user_id: str,
    status: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
) -> Sequence[Order]:
    """Caller's orders, newest first."""
    query = (
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    if status:
        query = query.where(Order.order_status == status)

    result = await db.execute(query)
    return result.scalars().all()


async def list_all_orders(db: AsyncSession) -> Sequence[Order]:
    """Every order, newest first (back office)."""
    result = await db.execute(select(Order).order_by(Order.created_at.desc()))
    return result.scalars().all()


# =============================================================================
# BACK OFFICE FILTERS
# =============================================================================

def filter_orders(
    orders: Iterable[Order],
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> list[Order]:
    """
    Client-side style filtering of an order list.

    Args:
        search: Case-insensitive substring of the customer name or order id
        status: Exact status match ("all" or empty disables the filter)
    """
    filtered = list(orders)

    if status and status != "all":
        filtered = [o for o in filtered if o.order_status == status]

    if search:
        term = search.lower()
        filtered = [
            o for o in filtered
            if term in o.id.lower()
            or (o.customer is not None and term in (o.customer.full_name or "").lower())
        ]

    return filtered


def is_active_order(order: Order) -> bool:
    return order.order_status not in TERMINAL_STATUSES


def partition_orders(orders: Iterable[Order]) -> tuple[list[Order], list[Order]]:
    """Split into (active, completed) where completed = delivered or cancelled."""
    active, completed = [], []
    for order in orders:
        (active if is_active_order(order) else completed).append(order)
    return active, completed


# =============================================================================
# MUTATIONS
# =============================================================================

async def _compare_and_set(
    db: AsyncSession,
    order: Order,
    values: dict[str, Any],
    expected_version: Optional[int] = None,
) -> Order:
    """Write ``values`` if the row still has the expected version."""
    expected = expected_version if expected_version is not None else order.version

    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.version == expected)
        .values(updated_at=utc_now(), version=Order.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        logger.warning(f"Stale update on order {order.id} (expected version {expected})")
        raise StaleOrderError()

    await db.commit()
    return await load_order(db, order.id)


async def change_status(
    db: AsyncSession,
    order: Order,
    target: Any,
    force: bool = False,
    expected_version: Optional[int] = None,
) -> Order:
    """
    Generic status change, validated against the transition table.

    Args:
        order: Order as currently loaded
        target: Requested status (unknown values raise InvalidStatusError)
        force: Bypass the transition table (caller must be an admin)
        expected_version: Version the caller based its decision on
    """
    new_status = validate_transition(order.order_status, target, force=force)
    previous = order.order_status

    updated = await _compare_and_set(
        db, order, {"order_status": new_status}, expected_version
    )
    logger.info(f"Order {order.id}: {previous} -> {new_status}")
    return updated


async def advance_order(
    db: AsyncSession,
    order_id: str,
    expected_version: Optional[int] = None,
) -> Order:
    """Move exactly one stage forward; terminal orders are returned unchanged."""
    order = await load_order(db, order_id)
    if not can_advance(order.order_status):
        logger.info(f"Order {order_id} is {order.order_status}, nothing to advance")
        return order
    return await change_status(
        db, order, next_status(order.order_status), expected_version=expected_version
    )


async def cancel_order(
    db: AsyncSession,
    order_id: str,
    expected_version: Optional[int] = None,
) -> Order:
    order = await load_order(db, order_id)
    if not can_cancel(order.order_status):
        raise InvalidStatusTransition(order.order_status, OrderStatus.CANCELLED.value)
    return await change_status(
        db, order, OrderStatus.CANCELLED.value, expected_version=expected_version
    )


def ensure_payable(order: Order) -> None:
    """
    Raise unless the order can still be charged.

    Raises:
        AlreadyPaidError: Payment already recorded
        InvalidStatusTransition: Order is cancelled or past confirmation
    """
    if order.payment_status == PaymentStatus.PAID.value:
        raise AlreadyPaidError()
    validate_transition(order.order_status, OrderStatus.CONFIRMED.value)


async def mark_paid(
    db: AsyncSession,
    order: Order,
    expected_version: Optional[int] = None,
) -> Order:
    """Record a successful payment: payment paid, order confirmed."""
    ensure_payable(order)

    updated = await _compare_and_set(
        db,
        order,
        {
            "payment_status": PaymentStatus.PAID.value,
            "order_status": OrderStatus.CONFIRMED.value,
        },
        expected_version,
    )
    logger.info(f"Order {order.id} paid and confirmed")
    return updated


# =============================================================================
# SUMMARIES
# =============================================================================

@dataclass
class ProfileStatsData:
    total_orders: int = 0
    total_spent: Decimal = ZERO
    delivered_orders: int = 0
    average_order_value: Decimal = ZERO


async def profile_stats(db: AsyncSession, user_id: str) -> ProfileStatsData:
    """Lifetime totals shown on the customer's profile page."""
    result = await db.execute(
        select(
            func.count(Order.id).label("total_orders"),
            func.coalesce(func.sum(Order.total_amount), 0).label("total_spent"),
            func.coalesce(
                func.sum(case((Order.order_status == OrderStatus.DELIVERED.value, 1), else_=0)),
                0,
            ).label("delivered_orders"),
        ).where(Order.user_id == user_id)
    )
    row = result.one()

    if not row.total_orders:
        return ProfileStatsData()

    total_spent = Decimal(str(row.total_spent)).quantize(Decimal("0.01"))
    return ProfileStatsData(
        total_orders=int(row.total_orders),
        total_spent=total_spent,
        delivered_orders=int(row.delivered_orders),
        average_order_value=(total_spent / row.total_orders).quantize(Decimal("0.01")),
    )


@dataclass
class DashboardStatsData:
    total_orders: int = 0
    total_revenue: Decimal = ZERO
    total_customers: int = 0
    pending_orders: int = 0
    completed_orders: int = 0
    cancelled_orders: int = 0
    today_orders: int = 0
    today_revenue: Decimal = ZERO
    recent_orders: list = field(default_factory=list)


def dashboard_stats(
    orders: Sequence[Order],
    now: Optional[datetime] = None,
    recent: int = 5,
) -> DashboardStatsData:
    """
    Back office headline numbers.

    ``orders`` must be sorted newest first (as list_all_orders returns them).
    "Today" is the current UTC calendar day.
    """
    today = as_utc(now or utc_now()).date()
    todays = [o for o in orders if as_utc(o.created_at).date() == today]

    def revenue(subset: Iterable[Order]) -> Decimal:
        return sum((Decimal(o.total_amount) for o in subset), ZERO)

    def count(status: OrderStatus) -> int:
        return sum(1 for o in orders if o.order_status == status.value)

    return DashboardStatsData(
        total_orders=len(orders),
        total_revenue=revenue(orders),
        total_customers=len({o.user_id for o in orders}),
        pending_orders=count(OrderStatus.PENDING),
        completed_orders=count(OrderStatus.DELIVERED),
        cancelled_orders=count(OrderStatus.CANCELLED),
        today_orders=len(todays),
        today_revenue=revenue(todays),
        recent_orders=list(orders[:recent]),
    )


# =============================================================================
# TRACKING
# =============================================================================

# Synthetic courier data until a dispatch integration exists
DEMO_DELIVERY_PERSON = {
    "name": "João Silva",
    "phone": "(11) 99999-9999",
    "vehicle": "Moto Honda CG 160",
    "plate": "ABC-1234",
    "rating": 4.8,
}

DEMO_LOCATION = {
    "lat": -23.5505,
    "lng": -46.6333,
    "address": "On the way to your address",
}


def build_tracking(order: Order, now: Optional[datetime] = None) -> dict[str, Any]:
    """Tracking payload; courier and location only while out for delivery."""
    on_the_way = order.order_status == OrderStatus.OUT_FOR_DELIVERY.value

    return {
        "order_id": order.id,
        "status": order.order_status,
        "estimated_delivery": order.estimated_delivery_time,
        "delivery_person": dict(DEMO_DELIVERY_PERSON) if on_the_way else None,
        "location": (
            {**DEMO_LOCATION, "last_update": now or utc_now()} if on_the_way else None
        ),
    }
