"""Room service - opening, reading and deleting chat rooms."""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from lucidchat.config import settings
from lucidchat.core import emotion_parser
from lucidchat.core.exceptions import NotFoundError
from lucidchat.models.character import Character
from lucidchat.models.chat_log import ChatLog
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import ChatMode
from lucidchat.models.user import User
from lucidchat.schemas.chat import RoomInfo
from lucidchat.services.cache_service import CacheService
from lucidchat.services.memory_service import recent_logs

logger = logging.getLogger(__name__)


async def load_room(db: AsyncSession, room_id: int, for_update: bool = False) -> ChatRoom:
    """Load a room with its user and character, optionally row-locked."""
    stmt = (
        select(ChatRoom)
        .where(ChatRoom.id == room_id)
        .options(selectinload(ChatRoom.user), selectinload(ChatRoom.character))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    room = result.scalar_one_or_none()
    if room is None:
        raise NotFoundError(f"Chat room {room_id} not found")
    return room


async def count_logs(db: AsyncSession, room_id: int) -> int:
    result = await db.execute(select(func.count(ChatLog.id)).where(ChatLog.room_id == room_id))
    return result.scalar_one()


def initialize_room(db: AsyncSession, room: ChatRoom, character: Character) -> None:
    """Seed a fresh room with the intro narration and the first greeting."""
    if character.intro_narration:
        db.add(ChatLog.system(room.id, character.intro_narration))
    if character.first_greeting:
        parsed = emotion_parser.parse(character.first_greeting)
        db.add(ChatLog.assistant(room.id, character.first_greeting, parsed.clean_text, parsed.emotion_tag))
        room.touch(parsed.emotion_tag)


class RoomService:
    def __init__(self, cache: CacheService, info_ttl: int = settings.ROOM_INFO_TTL):
        self.cache = cache
        self.info_ttl = info_ttl

    async def open_room(
        self,
        db: AsyncSession,
        user_id: int,
        character_id: int | None = None,
        mode: ChatMode = ChatMode.STORY,
    ) -> tuple[ChatRoom, bool]:
        """Return the user's room with the character, creating it on first contact."""
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        if character_id is None:
            result = await db.execute(select(Character).order_by(Character.id).limit(1))
            character = result.scalar_one_or_none()
        else:
            character = await db.get(Character, character_id)
        if character is None:
            raise NotFoundError("Character not found")

        result = await db.execute(
            select(ChatRoom).where(
                ChatRoom.user_id == user_id,
                ChatRoom.character_id == character.id,
                ChatRoom.chat_mode == mode.value,
            )
        )
        room = result.scalar_one_or_none()
        if room is not None:
            return room, False

        room = ChatRoom.open(user_id, character.id, mode)
        db.add(room)
        await db.flush()
        initialize_room(db, room, character)
        await db.flush()
        logger.info("Opened %s room %s for user %s with %s", mode.value, room.id, user_id, character.name)
        return room, True

    async def get_room_info(self, db: AsyncSession, room_id: int) -> RoomInfo:
        cached = await self.cache.get_room_info(room_id)
        if cached is not None:
            return RoomInfo.model_validate(cached)

        room = await load_room(db, room_id)
        info = RoomInfo.from_room(room)
        await self.cache.cache_room_info(room_id, info.model_dump(mode="json"), ttl=self.info_ttl)
        return info

    async def history(self, db: AsyncSession, room_id: int, limit: int = 50) -> list[ChatLog]:
        await load_room(db, room_id)
        return await recent_logs(db, room_id, limit)

    async def delete_room(self, db: AsyncSession, room_id: int) -> None:
        """Delete a room and every log it owns."""
        await load_room(db, room_id)
        await db.execute(delete(ChatLog).where(ChatLog.room_id == room_id))
        await db.execute(delete(ChatRoom).where(ChatRoom.id == room_id))
        await self.cache.evict_room_info(room_id)
        logger.info("Deleted room %s", room_id)
