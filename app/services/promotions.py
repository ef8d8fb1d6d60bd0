"""
Promotion Manager

CRUD over discount records. Only the request form enforces business rules
(see app.schemas.PromotionForm); the "currently active" state shown to
admins is derived here and is independent from the stored active flag.
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PromotionNotFoundError
from app.models import Promotion, as_utc, utc_now
from app.schemas import PromotionForm

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def is_currently_active(promotion: Promotion, now: Optional[datetime] = None) -> bool:
    """Active flag set AND now within [start_date, end_date]."""
    now = as_utc(now or utc_now())
    return (
        bool(promotion.active)
        and as_utc(promotion.start_date) <= now <= as_utc(promotion.end_date)
    )


def is_expired(promotion: Promotion, now: Optional[datetime] = None) -> bool:
    return as_utc(promotion.end_date) < as_utc(now or utc_now())


def generate_code(length: int = 6) -> str:
    """Random upper-case alphanumeric promotion code."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def list_promotions(db: AsyncSession) -> Sequence[Promotion]:
    result = await db.execute(select(Promotion).order_by(Promotion.created_at.desc()))
    return result.scalars().all()


async def get_promotion(db: AsyncSession, promotion_id: str) -> Promotion:
    promotion = await db.get(Promotion, promotion_id)
    if promotion is None:
        raise PromotionNotFoundError()
    return promotion


async def create_promotion(db: AsyncSession, form: PromotionForm) -> Promotion:
    promotion = Promotion(**form.model_dump(mode="python"))
    promotion.discount_type = form.discount_type.value
    db.add(promotion)
    await db.commit()
    await db.refresh(promotion)

    logger.info(f"Promotion {promotion.id} '{promotion.title}' created")
    return promotion


async def update_promotion(
    db: AsyncSession,
    promotion_id: str,
    form: PromotionForm,
) -> Promotion:
    promotion = await get_promotion(db, promotion_id)

    for key, value in form.model_dump(mode="python").items():
        setattr(promotion, key, value)
    promotion.discount_type = form.discount_type.value

    await db.commit()
    await db.refresh(promotion)

    logger.info(f"Promotion {promotion.id} updated")
    return promotion


async def set_active(db: AsyncSession, promotion_id: str, active: bool) -> Promotion:
    promotion = await get_promotion(db, promotion_id)
    promotion.active = active
    await db.commit()
    await db.refresh(promotion)

    logger.info(f"Promotion {promotion.id} {'activated' if active else 'deactivated'}")
    return promotion


async def delete_promotion(db: AsyncSession, promotion_id: str) -> None:
    promotion = await get_promotion(db, promotion_id)
    await db.delete(promotion)
    await db.commit()

    logger.info(f"Promotion {promotion_id} deleted")
