"""
Sales Reports Aggregator

Builds the back-office reports from delivered orders:
    - Monthly revenue / order count, chronological
    - Top products by units sold
    - Top customers by amount spent
    - Current vs previous calendar month with growth percentages

The four source queries run concurrently, each on its own session; the
aggregation itself is done in pandas.

Version: 1.0.0
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import Order, OrderItem, OrderStatus, Product, Profile, as_utc, utc_now

logger = logging.getLogger(__name__)

DELIVERED = OrderStatus.DELIVERED.value

PERIOD_MONTHS: dict[str, int] = {
    "3months": 3,
    "6months": 6,
    "1year": 12,
}
DEFAULT_PERIOD = "6months"

UNKNOWN_CUSTOMER = "Customer"


# =============================================================================
# DATE HELPERS
# =============================================================================

def month_start(year: int, month: int) -> datetime:
    """First instant of a calendar month; ``month`` may be out of 1..12."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """
    Start of the lookback window: first day of the month N months ago.

    Unknown periods fall back to six months.
    """
    now = as_utc(now or utc_now())
    months = PERIOD_MONTHS.get(period, PERIOD_MONTHS[DEFAULT_PERIOD])
    return month_start(now.year, now.month - months)


def growth(current: float, previous: float) -> float:
    """
    Month-over-month growth in percent.

    100 when there was nothing before and something now, 0 when both are 0.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def _money(value: Any) -> Decimal:
    return Decimal(str(round(float(value), 2)))


# =============================================================================
# AGGREGATIONS
# =============================================================================

def monthly_sales(orders: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Revenue and order count per calendar month ("YYYY-MM"), oldest first.

    Args:
        orders: Rows with ``created_at`` and ``total_amount``
    """
    if not orders:
        return []

    df = pd.DataFrame(orders)
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
    df["total_amount"] = df["total_amount"].astype(float)
    df["month"] = df["created_at"].dt.strftime("%Y-%m")

    grouped = (
        df.groupby("month", sort=True)
        .agg(revenue=("total_amount", "sum"), orders=("total_amount", "size"))
        .reset_index()
    )

    return [
        {"month": row.month, "revenue": _money(row.revenue), "orders": int(row.orders)}
        for row in grouped.itertuples(index=False)
    ]


def top_products(items: list[dict[str, Any]], limit: int = 10) -> list[dict[str, Any]]:
    """
    Units sold and revenue per product, most units first.

    Args:
        items: Rows with ``product_id``, ``name``, ``image_url``,
            ``quantity`` and ``unit_price``
    """
    if not items:
        return []

    df = pd.DataFrame(items)
    df["quantity"] = df["quantity"].astype(int)
    df["line_total"] = df["unit_price"].astype(float) * df["quantity"]

    grouped = (
        df.groupby("product_id", sort=False)
        .agg(
            name=("name", "first"),
            image_url=("image_url", "first"),
            total_sold=("quantity", "sum"),
            total_revenue=("line_total", "sum"),
        )
        .reset_index()
        .sort_values("total_sold", ascending=False, kind="mergesort")
        .head(limit)
    )

    return [
        {
            "id": row.product_id,
            "name": row.name,
            "image_url": row.image_url if isinstance(row.image_url, str) else None,
            "total_sold": int(row.total_sold),
            "total_revenue": _money(row.total_revenue),
        }
        for row in grouped.itertuples(index=False)
    ]


def top_customers(orders: list[dict[str, Any]], limit: int = 10) -> list[dict[str, Any]]:
    """
    Order count, amount spent and last order per customer, biggest spenders first.

    Args:
        orders: Rows with ``user_id``, ``total_amount``, ``created_at``,
            ``full_name`` and ``phone``
    """
    if not orders:
        return []

    df = pd.DataFrame(orders)
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
    df["total_amount"] = df["total_amount"].astype(float)
    df["full_name"] = df["full_name"].fillna(UNKNOWN_CUSTOMER)
    df["phone"] = df["phone"].fillna("")

    grouped = (
        df.groupby("user_id", sort=False)
        .agg(
            full_name=("full_name", "first"),
            phone=("phone", "first"),
            total_orders=("total_amount", "size"),
            total_spent=("total_amount", "sum"),
            last_order=("created_at", "max"),
        )
        .reset_index()
        .sort_values("total_spent", ascending=False, kind="mergesort")
        .head(limit)
    )

    return [
        {
            "id": row.user_id,
            "full_name": row.full_name,
            "phone": row.phone,
            "total_orders": int(row.total_orders),
            "total_spent": _money(row.total_spent),
            "last_order": row.last_order.to_pydatetime(),
        }
        for row in grouped.itertuples(index=False)
    ]


def _totals(df: pd.DataFrame) -> dict[str, Any]:
    return {
        "revenue": _money(df["total_amount"].sum()) if len(df) else Decimal("0.00"),
        "orders": int(len(df)),
        "customers": int(df["user_id"].nunique()) if len(df) else 0,
    }


def monthly_stats(orders: list[dict[str, Any]], now: Optional[datetime] = None) -> dict[str, Any]:
    """
    Current vs previous calendar month and the growth between them.

    Args:
        orders: Rows with ``created_at``, ``total_amount`` and ``user_id``
    """
    now = as_utc(now or utc_now())
    current_start = month_start(now.year, now.month)
    previous_start = month_start(now.year, now.month - 1)
    next_start = month_start(now.year, now.month + 1)

    df = pd.DataFrame(orders, columns=["created_at", "total_amount", "user_id"])
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
    df["total_amount"] = df["total_amount"].astype(float)

    current = _totals(df[(df["created_at"] >= current_start) & (df["created_at"] < next_start)])
    previous = _totals(df[(df["created_at"] >= previous_start) & (df["created_at"] < current_start)])

    return {
        "current_month": current,
        "previous_month": previous,
        "growth": {
            key: round(growth(float(current[key]), float(previous[key])), 1)
            for key in ("revenue", "orders", "customers")
        },
    }


# =============================================================================
# DATA LOADING
# =============================================================================

async def _fetch_period_orders(db: AsyncSession, start: datetime) -> list[dict]:
    result = await db.execute(
        select(Order.created_at, Order.total_amount)
        .where(Order.order_status == DELIVERED, Order.created_at >= start)
    )
    return [dict(row._mapping) for row in result]


async def _fetch_product_items(db: AsyncSession, start: datetime) -> list[dict]:
    result = await db.execute(
        select(
            Product.id.label("product_id"),
            Product.name,
            Product.image_url,
            OrderItem.quantity,
            OrderItem.unit_price,
        )
        .select_from(OrderItem)
        .join(Product, Product.id == OrderItem.product_id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.order_status == DELIVERED, Order.created_at >= start)
    )
    return [dict(row._mapping) for row in result]


async def _fetch_customer_orders(db: AsyncSession, start: datetime) -> list[dict]:
    result = await db.execute(
        select(
            Order.user_id,
            Order.total_amount,
            Order.created_at,
            Profile.full_name,
            Profile.phone,
        )
        .select_from(Order)
        .outerjoin(Profile, Profile.id == Order.user_id)
        .where(Order.order_status == DELIVERED, Order.created_at >= start)
    )
    return [dict(row._mapping) for row in result]


async def _fetch_recent_months(db: AsyncSession, now: datetime) -> list[dict]:
    result = await db.execute(
        select(Order.created_at, Order.total_amount, Order.user_id)
        .where(
            Order.order_status == DELIVERED,
            Order.created_at >= month_start(now.year, now.month - 1),
            Order.created_at < month_start(now.year, now.month + 1),
        )
    )
    return [dict(row._mapping) for row in result]


@dataclass
class ReportData:
    period: str
    start_date: datetime
    sales: list = field(default_factory=list)
    top_products: list = field(default_factory=list)
    top_customers: list = field(default_factory=list)
    monthly_stats: dict = field(default_factory=dict)


async def build_report(
    session_factory: async_sessionmaker[AsyncSession],
    period: str = DEFAULT_PERIOD,
    now: Optional[datetime] = None,
    top_n: int = 10,
) -> ReportData:
    """
    Run the four report queries concurrently and aggregate them.

    Args:
        session_factory: Factory for the independent per-query sessions
        period: "3months", "6months" or "1year" (anything else = 6 months)
        now: Reference time (defaults to current UTC time)
        top_n: Size of the product and customer rankings
    """
    now = as_utc(now or utc_now())
    if period not in PERIOD_MONTHS:
        period = DEFAULT_PERIOD
    start = period_start(period, now)

    async def run(query, *args):
        async with session_factory() as session:
            return await query(session, *args)

    orders, items, customers, recent = await asyncio.gather(
        run(_fetch_period_orders, start),
        run(_fetch_product_items, start),
        run(_fetch_customer_orders, start),
        run(_fetch_recent_months, now),
    )
    logger.debug(
        f"Report {period}: {len(orders)} orders, {len(items)} items, "
        f"{len(customers)} customer rows, {len(recent)} recent"
    )

    return ReportData(
        period=period,
        start_date=start,
        sales=monthly_sales(orders),
        top_products=top_products(items, top_n),
        top_customers=top_customers(customers, top_n),
        monthly_stats=monthly_stats(recent, now),
    )
