"""
Address Book

Delivery addresses per user. A user's first address is created as the
default one; ``set_default_address`` moves the flag explicitly.
"""

import logging
from typing import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AddressNotFoundError
from app.models import Address
from app.schemas import AddressCreate

logger = logging.getLogger(__name__)


async def list_addresses(db: AsyncSession, user_id: str) -> Sequence[Address]:
    """User's addresses, default first."""
    result = await db.execute(
        select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at)
    )
    return result.scalars().all()


async def get_address(db: AsyncSession, user_id: str, address_id: str) -> Address:
    result = await db.execute(
        select(Address).where(Address.id == address_id, Address.user_id == user_id)
    )
    address = result.scalar_one_or_none()
    if address is None:
        raise AddressNotFoundError()
    return address


async def create_address(db: AsyncSession, user_id: str, data: AddressCreate) -> Address:
    """Insert an address; it becomes the default when it is the user's first."""
    count_result = await db.execute(
        select(func.count(Address.id)).where(Address.user_id == user_id)
    )
    is_first = (count_result.scalar() or 0) == 0

    address = Address(user_id=user_id, is_default=is_first, **data.model_dump())
    db.add(address)
    await db.commit()
    await db.refresh(address)

    logger.info(f"Address {address.id} created for user {user_id} (default={is_first})")
    return address


async def set_default_address(db: AsyncSession, user_id: str, address_id: str) -> Address:
    address = await get_address(db, user_id, address_id)

    await db.execute(
        update(Address)
        .where(Address.user_id == user_id, Address.id != address_id)
        .values(is_default=False)
    )
    address.is_default = True
    await db.commit()
    await db.refresh(address)
    return address
