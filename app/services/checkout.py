"""
Checkout Service

Details step of the checkout wizard: turns the shopper's cart into an
order priced at the current catalog prices.

Flow:
    1. Merge the cart lines and look up current prices
    2. Resolve the delivery address (existing, or create a new one)
    3. Insert the order (total = sum of price x quantity)
    4. Insert one order item per line with the unit price frozen

Steps 3 and 4 are committed separately. If the item insert fails the
order row stays behind without items; it is logged and the shopper is
asked to retry.

Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import EmptyCartError, ValidationError
from app.models import Order, OrderItem, OrderStatus, PaymentStatus
from app.schemas import CheckoutLine, CheckoutRequest
from app.services import addresses, catalog
from app.services.orders import load_order

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class PricedLine:
    product_id: str
    quantity: int
    unit_price: Decimal
    notes: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def merge_lines(lines: Iterable[CheckoutLine]) -> list[CheckoutLine]:
    """Collapse repeated products into one line (the cart never holds duplicates)."""
    merged: dict[str, CheckoutLine] = {}
    for line in lines:
        existing = merged.get(line.product_id)
        if existing:
            merged[line.product_id] = existing.model_copy(
                update={
                    "quantity": existing.quantity + line.quantity,
                    "notes": existing.notes or line.notes,
                }
            )
        else:
            merged[line.product_id] = line
    return list(merged.values())


def price_lines(lines: Iterable[CheckoutLine], prices: dict[str, Decimal]) -> list[PricedLine]:
    """Attach current prices, dropping products no longer in the catalog."""
    return [
        PricedLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=prices[line.product_id],
            notes=line.notes,
        )
        for line in lines
        if line.product_id in prices
    ]


def order_total(lines: Iterable[PricedLine]) -> Decimal:
    return sum((line.line_total for line in lines), Decimal("0")).quantize(CENT)


async def place_order(db: AsyncSession, user_id: str, request: CheckoutRequest) -> Order:
    """
    Create the order and its items for ``user_id``.

    Raises:
        EmptyCartError: No line left that can be priced
        ValidationError: No delivery address given
        AddressNotFoundError: address_id is not one of the user's addresses
        SQLAlchemyError: Store failure (logged, no order returned)
    """
    settings = get_settings()

    lines = merge_lines(request.items)
    if not lines:
        raise EmptyCartError()

    prices = await catalog.get_prices(db, (line.product_id for line in lines))
    priced = price_lines(lines, prices)
    if not priced:
        raise EmptyCartError("None of the products in the cart are available")

    if request.address_id:
        address = await addresses.get_address(db, user_id, request.address_id)
    elif request.new_address is not None:
        address = await addresses.create_address(db, user_id, request.new_address)
    else:
        raise ValidationError("A delivery address is required")

    total = order_total(priced)

    try:
        order = Order(
            user_id=user_id,
            address_id=address.id,
            total_amount=total,
            payment_method=request.payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
            order_status=OrderStatus.PENDING.value,
            notes=request.notes,
            estimated_delivery_time=settings.estimated_delivery_minutes,
        )
        db.add(order)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(f"Error creating order for user {user_id}")
        raise

    try:
        db.add_all([
            OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                notes=line.notes,
            )
            for line in priced
        ])
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        # TODO: make order + items one transaction once orphan cleanup is decided
        logger.exception(f"Order {order.id} created but its items failed to insert")
        raise

    logger.info(
        f"Order {order.id} placed by {user_id}: {len(priced)} lines, total {total}"
    )
    return await load_order(db, order.id)
