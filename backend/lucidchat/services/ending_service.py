"""Ending service - the one-shot ending sequence of a story room.

Stages: recall memories, rewrite them as the character's recollections,
write the ending scenes, name the ending, collect play stats, then finalize
the room and unlock the achievement. Only the generation calls for scenes
and title may fail the request; everything else degrades to a fallback.
"""

import json
import logging
import re
import time
from datetime import date

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lucidchat.config import settings
from lucidchat.core.exceptions import BadRequestError
from lucidchat.core.session_lock import SessionLockRegistry
from lucidchat.models.chat_log import ChatLog
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import ChatMode, EmotionTag, EndingType
from lucidchat.schemas.ending import EndingResponse, EndingScene, EndingScenesPayload, EndingStats
from lucidchat.services.achievement_service import achievement_service
from lucidchat.services.cache_service import CacheService
from lucidchat.services.llm_service import GenerationGateway
from lucidchat.services.memory_service import MemoryService, recent_logs
from lucidchat.services.prompt_service import (
    build_messages,
    ending_scene_prompt,
    ending_title_prompt,
    memory_transform_prompt,
    select_prompt_mode,
)
from lucidchat.services.room_service import load_room

logger = logging.getLogger(__name__)

MEMORY_QUERIES = (
    "most memorable moment",
    "special event together",
    "touching conversation",
    "first meeting",
)

SCENE_TEMPERATURE = 0.85
TITLE_TEMPERATURE = 0.9
TRANSFORM_TEMPERATURE = 0.7

FALLBACK_QUOTES = {
    EndingType.HAPPY: "주인님과의 모든 순간이, 저에겐 기적이었어요.",
    EndingType.BAD: "처음 문을 열어주셨던 날의 온기가... 아직도 손끝에 남아 있어요.",
}

FALLBACK_SCENE = EndingScene(
    narration="그녀가 조용히 당신을 바라본다.",
    dialogue="...감사했습니다, 주인님.",
    emotion=EmotionTag.SAD,
)

FALLBACK_TITLE = {
    EndingType.HAPPY: "함께 걷는 내일",
    EndingType.BAD: "닫혀버린 문",
}

TITLE_QUOTES = "\"'“”‘’"

# "1." / "2)" numbering or a "-" bullet echoed back by the model
LINE_MARKER = re.compile(r"^\s*(\d+[.)]|-)\s*")


def parse_ending_type(value: str) -> EndingType:
    try:
        return EndingType(value.strip().upper())
    except (AttributeError, ValueError):
        raise BadRequestError(f"Unknown ending type: {value!r} (expected HAPPY or BAD)")


def strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_scenes(raw: str) -> EndingScenesPayload:
    """Parse the scene JSON; anything unusable yields the single fallback scene."""
    try:
        return EndingScenesPayload.model_validate(json.loads(strip_code_fence(raw)))
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.warning("Ending scene JSON unusable, using fallback scene: %s", e)
        return EndingScenesPayload(scenes=[FALLBACK_SCENE])


def clean_title(raw: str) -> str:
    return raw.strip().strip(TITLE_QUOTES).strip()


def align_memories(transformed: list[str], originals: list[str]) -> list[str]:
    """Keep exactly one recollection per memory, padding with the originals."""
    aligned = transformed[: len(originals)]
    aligned.extend(originals[len(aligned):])
    return aligned


class EndingService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: GenerationGateway,
        memory: MemoryService,
        locks: SessionLockRegistry,
        cache: CacheService,
        title_model: str = settings.SENTIMENT_MODEL,
        window: int = settings.MAX_CHAT_CONTEXT_LOGS,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.memory = memory
        self.locks = locks
        self.cache = cache
        self.title_model = title_model
        self.window = window

    async def generate_ending(self, room_id: int, ending_type: str) -> EndingResponse:
        etype = parse_ending_type(ending_type)
        started = time.perf_counter()
        logger.info("Ending %s started for room %s", etype.value, room_id)

        async with self.session_factory() as db:
            room = await load_room(db, room_id)
            if room.mode != ChatMode.STORY:
                raise BadRequestError("Endings are only available in story mode")
            logs = await recent_logs(db, room_id, self.window)

        stage = time.perf_counter()
        memories = await self.recall_memories(room.user_id)
        logger.info("Ending recall: %d memories in %.0fms", len(memories), _ms(stage))

        memories = await self.transform_memories(etype, room, memories)
        memory_block = "\n".join(f"- {m}" for m in memories)

        stage = time.perf_counter()
        scene_prompt = ending_scene_prompt(
            etype, room.character, room.user, room, memory_block,
            prompt_mode=select_prompt_mode(room, room.user),
        )
        raw_scenes = await self.gateway.complete(
            room.character.llm_model_name or settings.LLM_MODEL,
            build_messages(scene_prompt, logs),
            temperature=SCENE_TEMPERATURE,
        )
        payload = parse_scenes(raw_scenes)
        logger.info("Ending scenes: %d in %.0fms", len(payload.scenes), _ms(stage))

        stage = time.perf_counter()
        recent_conversation = "\n".join(f"{log.role.upper()}: {log.clean_content}" for log in logs)
        raw_title = await self.gateway.complete(
            self.title_model,
            [{"role": "system", "content": ending_title_prompt(
                etype, room.character, room.user, memory_block, recent_conversation
            )}],
            temperature=TITLE_TEMPERATURE,
        )
        title = clean_title(raw_title) or FALLBACK_TITLE[etype]
        logger.info("Ending title %r in %.0fms", title, _ms(stage))

        async with self.locks.hold(room_id):
            async with self.session_factory() as db:
                room = await load_room(db, room_id, for_update=True)
                stats = await self.collect_stats(db, room)
                db.add(ChatLog.system(room.id, f"[ENDING:{etype.value}] {title}"))
                room.mark_ending(etype, title)
                await db.commit()
        await self.cache.evict_room_info(room_id)

        await self.unlock_achievement(room.user_id, etype)

        logger.info("Ending %s done for room %s in %.0fms", etype.value, room_id, _ms(started))
        return EndingResponse(
            ending_type=etype,
            title=title,
            scenes=payload.scenes,
            memories=memories,
            character_quote=payload.character_quote or FALLBACK_QUOTES[etype],
            stats=stats,
        )

    async def recall_memories(self, user_id: int) -> list[str]:
        """Deduplicated memory lines across the fixed recall queries."""
        found: list[str] = []
        try:
            for query in MEMORY_QUERIES:
                block = await self.memory.retrieve(user_id, query)
                for line in block.splitlines():
                    cleaned = line[2:].strip() if line.startswith("- ") else line.strip()
                    if cleaned and cleaned not in found:
                        found.append(cleaned)
        except Exception as e:
            logger.warning("Ending memory recall failed: %s", e)
            return []
        return found

    async def transform_memories(
        self, ending_type: EndingType, room: ChatRoom, memories: list[str]
    ) -> list[str]:
        """Rewrite memories as first-person recollections; the raw list on failure."""
        if not memories:
            return []
        stage = time.perf_counter()
        try:
            raw = await self.gateway.complete(
                self.title_model,
                [{"role": "system", "content": memory_transform_prompt(
                    ending_type, room.character, memories
                )}],
                temperature=TRANSFORM_TEMPERATURE,
            )
        except Exception as e:
            logger.warning("Memory transform failed, keeping raw memories: %s", e)
            return memories

        lines = [LINE_MARKER.sub("", line).strip() for line in raw.splitlines()]
        lines = [line for line in lines if line]
        if not lines:
            return memories
        logger.info("Ending memory transform in %.0fms", _ms(stage))
        return align_memories(lines, memories)

    @staticmethod
    async def collect_stats(db: AsyncSession, room: ChatRoom) -> EndingStats:
        result = await db.execute(
            select(func.count(ChatLog.id), func.min(ChatLog.created_at)).where(
                ChatLog.room_id == room.id
            )
        )
        total, first_at = result.one()

        first_date = "unknown"
        total_days = 0
        if first_at is not None:
            first_date = first_at.date().isoformat()
            total_days = (date.today() - first_at.date()).days + 1

        return EndingStats(
            total_messages=total,
            total_days=total_days,
            final_affection=room.affection_score,
            final_relation=room.tier,
            first_message_date=first_date,
        )

    async def unlock_achievement(self, user_id: int, ending_type: EndingType) -> None:
        try:
            async with self.session_factory() as db:
                await achievement_service.unlock_ending(db, user_id, ending_type)
                await db.commit()
        except Exception:
            logger.exception("Achievement unlock failed for user %s", user_id)


def _ms(since: float) -> float:
    return (time.perf_counter() - since) * 1000
