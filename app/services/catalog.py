"""
Catalog Reader

Read-only access to active categories and products, plus the current
price lookup used when pricing a cart at checkout.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Category, Product

logger = logging.getLogger(__name__)


async def list_categories(db: AsyncSession) -> Sequence[Category]:
    result = await db.execute(
        select(Category)
        .where(Category.active.is_(True))
        .order_by(Category.sort_order, Category.name)
    )
    return result.scalars().all()


async def list_products(
    db: AsyncSession,
    category_id: Optional[str] = None,
) -> Sequence[Product]:
    """Active products, optionally restricted to one category."""
    query = select(Product).where(Product.active.is_(True)).order_by(Product.name)
    if category_id:
        query = query.where(Product.category_id == category_id)

    result = await db.execute(query)
    return result.scalars().all()


async def get_prices(db: AsyncSession, product_ids: Iterable[str]) -> dict[str, Decimal]:
    """
    Current price of each active product in ``product_ids``.

    Unknown or inactive products are simply absent from the result.
    """
    ids = list(set(product_ids))
    if not ids:
        return {}

    result = await db.execute(
        select(Product.id, Product.price)
        .where(Product.id.in_(ids), Product.active.is_(True))
    )
    prices = {product_id: Decimal(price) for product_id, price in result.all()}

    missing = set(ids) - prices.keys()
    if missing:
        logger.debug(f"Products not purchasable: {sorted(missing)}")
    return prices
