"""Achievement service - records unlocks triggered by endings."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lucidchat.models.achievement import Achievement
from lucidchat.models.enums import EndingType

logger = logging.getLogger(__name__)


def ending_code(ending_type: EndingType) -> str:
    return f"{ending_type.value}_ENDING"


class AchievementService:
    @staticmethod
    async def unlock_ending(db: AsyncSession, user_id: int, ending_type: EndingType) -> bool:
        """Unlock the badge for an ending. Returns False if it was already unlocked."""
        code = ending_code(ending_type)
        result = await db.execute(
            select(Achievement).where(Achievement.user_id == user_id, Achievement.code == code)
        )
        if result.scalar_one_or_none() is not None:
            logger.info("Achievement %s already unlocked for user %s", code, user_id)
            return False

        db.add(Achievement(user_id=user_id, code=code))
        await db.flush()
        logger.info("Achievement %s unlocked for user %s", code, user_id)
        return True

    @staticmethod
    async def list_codes(db: AsyncSession, user_id: int) -> list[str]:
        result = await db.execute(
            select(Achievement.code)
            .where(Achievement.user_id == user_id)
            .order_by(Achievement.unlocked_at)
        )
        return list(result.scalars().all())


achievement_service = AchievementService()
