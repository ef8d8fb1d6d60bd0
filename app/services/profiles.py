"""
Profiles and Admin Roles

Customer profile lookups and the admin role check guarding the back office.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import AdminRole, Profile

logger = logging.getLogger(__name__)


async def get_profile(db: AsyncSession, user_id: str) -> Optional[Profile]:
    return await db.get(Profile, user_id)


async def get_admin_role(db: AsyncSession, user_id: str) -> Optional[AdminRole]:
    result = await db.execute(select(AdminRole).where(AdminRole.user_id == user_id))
    return result.scalar_one_or_none()

