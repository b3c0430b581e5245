"""Affinity service - scores each turn's sentiment into the room's affection.

Turns emit an ``AffectionDeltaEvent``; a single worker task drains the queue
and applies the scored delta under the room lock, after the turn has already
answered the user.
"""

import asyncio
import logging
import re

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lucidchat.config import settings
from lucidchat.core import relationship as policy
from lucidchat.core.events import AffectionDeltaEvent, AffectionEventQueue
from lucidchat.core.exceptions import NotFoundError
from lucidchat.core.session_lock import SessionLockRegistry
from lucidchat.models.chat_log import ChatLog
from lucidchat.services.cache_service import CacheService
from lucidchat.services.llm_service import GenerationGateway
from lucidchat.services.room_service import load_room

logger = logging.getLogger(__name__)

MAX_DELTA = 5

SENTIMENT_PROMPT = (
    "Rate how the following message from the user would make the character feel "
    "about them.\n"
    "Reply with a single integer from -5 (hurtful, rude) to +5 (kind, romantic); "
    "0 for neutral small talk. Output the number only.\n\n"
    "[Message]\n{message}"
)

_NON_NUMERIC = re.compile(r"[^0-9+\-]")
_SIGNED_INT = re.compile(r"[+\-]?\d+")


def parse_delta(raw: str | None) -> int:
    """Turn the sentiment model's reply into a delta in [-5, 5]; junk scores 0."""
    if not raw:
        return 0
    cleaned = _NON_NUMERIC.sub("", raw)
    if not _SIGNED_INT.fullmatch(cleaned):
        return 0
    return policy.clamp(int(cleaned), -MAX_DELTA, MAX_DELTA)


def promotion_message(change: policy.ScoreChange) -> str:
    parts = [f"[PROMOTION:{change.tier.value}] Relation is now {policy.TIER_DISPLAY_NAMES[change.tier]}."]
    if change.unlocks.locations:
        parts.append("New places: " + ", ".join(loc.value for loc in change.unlocks.locations) + ".")
    if change.unlocks.outfits:
        parts.append("New outfits: " + ", ".join(o.value for o in change.unlocks.outfits) + ".")
    return " ".join(parts)


class AffectionScorer:
    def __init__(
        self,
        gateway: GenerationGateway,
        session_factory: async_sessionmaker[AsyncSession],
        locks: SessionLockRegistry,
        cache: CacheService,
        model: str = settings.SENTIMENT_MODEL,
        score_min: int = settings.SCORE_MIN,
        score_max: int = settings.SCORE_MAX,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.locks = locks
        self.cache = cache
        self.model = model
        self.score_min = score_min
        self.score_max = score_max

    async def score(self, event: AffectionDeltaEvent) -> policy.ScoreChange | None:
        """Score one event. Returns None when the room is gone."""
        async with self.session_factory() as db:
            try:
                await load_room(db, event.room_id)
            except NotFoundError:
                logger.info("Room %s is gone, skipping affection scoring", event.room_id)
                return None

        raw = await self.gateway.complete(
            self.model,
            [{"role": "user", "content": SENTIMENT_PROMPT.format(message=event.user_message)}],
            temperature=0.0,
        )
        delta = parse_delta(raw)

        async with self.locks.hold(event.room_id):
            async with self.session_factory() as db:
                try:
                    room = await load_room(db, event.room_id, for_update=True)
                except NotFoundError:
                    logger.info("Room %s deleted while scoring", event.room_id)
                    return None

                change = room.apply_affection_delta(delta, self.score_min, self.score_max)
                if change.promoted:
                    db.add(ChatLog.system(room.id, promotion_message(change)))
                    logger.info(
                        "Room %s promoted %s -> %s",
                        room.id, change.previous_tier.value, change.tier.value,
                    )
                await db.commit()

        await self.cache.evict_room_info(event.room_id)
        logger.debug("Room %s affection %+d -> %d", event.room_id, delta, change.score)
        return change


class AffectionWorker:
    """Consumes the event queue one event at a time until stopped."""

    def __init__(self, queue: AffectionEventQueue, scorer: AffectionScorer):
        self.queue = queue
        self.scorer = scorer
        self._task: asyncio.Task | None = None

    async def run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.scorer.score(event)
            except Exception:
                logger.exception("Affection scoring failed for room %s, event dropped", event.room_id)
            finally:
                self.queue.task_done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="affection-worker")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        if self.queue.qsize():
            logger.info("Affection worker stopped with %d events pending", self.queue.qsize())
