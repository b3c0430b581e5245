"""Memory service - the character's long-term memory of the user (RAG).

Reads happen on every story turn and during endings; writes happen off the
critical path after every batch of turns. Neither direction may ever break
a conversation: failures are logged and swallowed.
"""

import logging
import time
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lucidchat.config import settings
from lucidchat.core.events import BackgroundTasks
from lucidchat.models.chat_log import ChatLog
from lucidchat.services.llm_service import GenerationGateway
from lucidchat.services.vector_store import VectorStore

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Analyze the following conversation between the User and an AI character.\n"
    "Extract key facts about the User (preferences, name, job, etc.) and significant events.\n\n"
    "[Conversation]\n{conversation}\n\n"
    "[Output Rule]\n"
    "- Summarize in Korean within 3 sentences.\n"
    "- Focus on the User's info and the relationship's progress.\n"
    "- Ignore small talk (greetings, weather)."
)


def user_namespace(user_id: int) -> str:
    return f"user-{user_id}"


async def recent_logs(db: AsyncSession, room_id: int, limit: int) -> list[ChatLog]:
    """The latest ``limit`` logs of a room in chronological order."""
    result = await db.execute(
        select(ChatLog)
        .where(ChatLog.room_id == room_id)
        .order_by(ChatLog.created_at.desc(), ChatLog.id.desc())
        .limit(limit)
    )
    logs = list(result.scalars().all())
    logs.reverse()  # chronological order
    return logs


class MemoryService:
    def __init__(
        self,
        gateway: GenerationGateway,
        store: VectorStore,
        session_factory: async_sessionmaker[AsyncSession],
        tasks: BackgroundTasks,
        top_k: int = settings.MEMORY_TOP_K,
        window: int = settings.MAX_CHAT_CONTEXT_LOGS,
        summary_model: str = settings.SUMMARY_MODEL,
    ):
        self.gateway = gateway
        self.store = store
        self.session_factory = session_factory
        self.tasks = tasks
        self.top_k = top_k
        self.window = window
        self.summary_model = summary_model

    async def retrieve(self, user_id: int, query: str) -> str:
        """Memories relevant to ``query`` as a bullet list, or "" on any failure."""
        if not query or not query.strip():
            return ""
        started = time.perf_counter()
        try:
            vector = await self.gateway.embed(query)
            matches = await self.store.query(
                user_namespace(user_id),
                vector,
                self.top_k,
                filter={"user_id": str(user_id)},
            )
        except Exception as e:
            logger.warning("Memory retrieval failed for user %s: %s", user_id, e)
            return ""

        lines = [
            f"- {m.metadata['content']}"
            for m in matches[: self.top_k]
            if m.metadata.get("content")
        ]
        logger.debug(
            "Retrieved %d memories for user %s in %.0fms",
            len(lines), user_id, (time.perf_counter() - started) * 1000,
        )
        return "\n".join(lines)

    def schedule_summary(self, room_id: int, user_id: int) -> None:
        """Fire-and-forget summarization; the caller never waits on it."""
        self.tasks.spawn(self.summarize_and_store(room_id, user_id), name=f"summarize-{room_id}")

    async def summarize_and_store(self, room_id: int, user_id: int) -> None:
        started = time.perf_counter()
        try:
            async with self.session_factory() as db:
                logs = await recent_logs(db, room_id, self.window)
            if not logs:
                return

            conversation = "\n".join(f"{log.role.upper()}: {log.clean_content}" for log in logs)
            summary = await self.gateway.complete(
                self.summary_model,
                [{"role": "system", "content": SUMMARY_PROMPT.format(conversation=conversation)}],
                temperature=0.5,
            )
            summary = summary.strip()
            if not summary:
                logger.warning("Empty summary for room %s, nothing stored", room_id)
                return

            vector = await self.gateway.embed(summary)
            await self.store.upsert(
                user_namespace(user_id),
                str(uuid.uuid4()),
                vector,
                {
                    "user_id": str(user_id),
                    "room_id": str(room_id),
                    "content": summary,
                    "timestamp": datetime.now().isoformat(),
                },
            )
            logger.info(
                "Stored memory for user %s (room %s) in %.0fms",
                user_id, room_id, (time.perf_counter() - started) * 1000,
            )
        except Exception:
            logger.exception("Memory summarization failed for room %s", room_id)
