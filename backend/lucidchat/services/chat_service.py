"""Chat service - processes one conversational turn end to end.

A turn runs under the room lock: debit energy and persist the user's line,
build the prompt, ask the model, persist the parsed reply. Scoring the turn
is left to the affection worker.
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lucidchat.config import settings
from lucidchat.core import emotion_parser
from lucidchat.core.events import AffectionDeltaEvent, AffectionEventQueue
from lucidchat.core.session_lock import SessionLockRegistry
from lucidchat.models.chat_log import ChatLog
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import ChatMode, EmotionTag, PromptMode, RelationTier
from lucidchat.services import energy_service
from lucidchat.services.cache_service import CacheService
from lucidchat.services.llm_service import GenerationGateway
from lucidchat.services.memory_service import MemoryService, recent_logs
from lucidchat.services.prompt_service import (
    build_messages,
    build_system_prompt,
    select_prompt_mode,
)
from lucidchat.services.room_service import count_logs, load_room

logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.8


@dataclass
class TurnResult:
    reply: str
    emotion: EmotionTag
    affection_score: int
    relation_tier: RelationTier
    energy: int


class ChatService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: GenerationGateway,
        memory: MemoryService,
        events: AffectionEventQueue,
        locks: SessionLockRegistry,
        cache: CacheService,
        window: int = settings.MAX_CHAT_CONTEXT_LOGS,
        summary_every: int = settings.SUMMARY_EVERY_N_LOGS,
        hard_limit: bool = settings.ENERGY_HARD_LIMIT,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.memory = memory
        self.events = events
        self.locks = locks
        self.cache = cache
        self.window = window
        self.summary_every = summary_every
        self.hard_limit = hard_limit

    async def process_turn(self, room_id: int, text: str) -> TurnResult:
        started = time.perf_counter()
        async with self.locks.hold(room_id):
            async with self.session_factory() as db:
                room = await load_room(db, room_id, for_update=True)
                energy = energy_service.charge(room.user, room.mode, self.hard_limit)
                db.add(ChatLog.user(room.id, text))
                await db.flush()
                log_count = await count_logs(db, room.id)
                await db.commit()

            if self.summary_every and log_count % self.summary_every == 0:
                self.memory.schedule_summary(room.id, room.user_id)

            room, parsed = await self._reply(room, query=text)

        if room.mode == ChatMode.STORY:
            self.events.emit(AffectionDeltaEvent(room_id=room.id, user_message=text))
        await self.cache.evict_room_info(room.id)

        logger.info(
            "Turn done for room %s (%s) in %.0fms",
            room.id, room.last_emotion, (time.perf_counter() - started) * 1000,
        )
        return self._result(room, parsed, energy)

    async def process_system_event(self, room_id: int, detail: str) -> TurnResult:
        """Narrate an event into the room and let the character react to it."""
        async with self.locks.hold(room_id):
            async with self.session_factory() as db:
                room = await load_room(db, room_id, for_update=True)
                db.add(ChatLog.system(room.id, detail))
                await db.commit()

            room, parsed = await self._reply(room, query=detail)

        await self.cache.evict_room_info(room.id)
        logger.info("System event handled for room %s", room.id)
        return self._result(room, parsed, room.user.energy)

    async def _reply(
        self, room: ChatRoom, query: str
    ) -> tuple[ChatRoom, emotion_parser.ParsedReply]:
        """Generate, parse and persist the character's next line."""
        prompt_mode = select_prompt_mode(room, room.user)
        memory = ""
        if prompt_mode != PromptMode.SANDBOX:
            memory = await self.memory.retrieve(room.user_id, query)

        async with self.session_factory() as db:
            logs = await recent_logs(db, room.id, self.window)

        system_prompt = build_system_prompt(prompt_mode, room.character, room, room.user, memory)
        raw = await self.gateway.complete(
            room.character.llm_model_name or settings.LLM_MODEL,
            build_messages(system_prompt, logs),
            temperature=CHAT_TEMPERATURE,
            penalty=True,
        )
        parsed = emotion_parser.parse(raw)

        async with self.session_factory() as db:
            room = await load_room(db, room.id, for_update=True)
            db.add(ChatLog.assistant(room.id, raw, parsed.clean_text, parsed.emotion_tag))
            room.touch(parsed.emotion_tag)
            await db.commit()
        return room, parsed

    @staticmethod
    def _result(room: ChatRoom, parsed: emotion_parser.ParsedReply, energy: int) -> TurnResult:
        return TurnResult(
            reply=parsed.clean_text,
            emotion=parsed.emotion_tag,
            affection_score=room.affection_score,
            relation_tier=room.tier,
            energy=energy,
        )
