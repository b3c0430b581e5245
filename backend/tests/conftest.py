"""Shared test fixtures - uses async SQLite for isolated testing."""

from collections import deque

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lucidchat.core.events import AffectionEventQueue, BackgroundTasks
from lucidchat.core.session_lock import SessionLockRegistry
from lucidchat.db.database import Base, get_db
from lucidchat.models.character import Character
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import ChatMode
from lucidchat.models.user import User
from lucidchat.services.cache_service import CacheService
from lucidchat.services.vector_store import VectorMatch

# In-memory SQLite for tests (no Docker needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


async def _override_get_db():
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    # Import all models so Base.metadata knows about them
    import lucidchat.models  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory():
    return test_session_factory


# ---------------------------------------------------------------------------
# Stub collaborators
# ---------------------------------------------------------------------------


class StubGateway:
    """Scripted generation gateway.

    ``replies`` are consumed in order; an Exception instance is raised
    instead of returned. Once the script runs out ``default`` is returned.
    """

    def __init__(self, replies=(), default: str = "", vector=None):
        self.replies = deque(replies)
        self.default = default
        self.vector = vector or [0.1, 0.2, 0.3]
        self.calls: list[dict] = []
        self.embedded: list[str] = []
        self.embed_error: Exception | None = None

    def script(self, *replies) -> None:
        self.replies.extend(replies)

    async def complete(self, model, messages, temperature, penalty=False):
        self.calls.append(
            {"model": model, "messages": messages, "temperature": temperature, "penalty": penalty}
        )
        reply = self.replies.popleft() if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def embed(self, text):
        self.embedded.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        return list(self.vector)


class StubVectorStore:
    def __init__(self):
        self.records: dict[str, list[tuple[str, list[float], dict]]] = {}
        self.query_error: Exception | None = None

    async def upsert(self, namespace, id, vector, metadata):
        self.records.setdefault(namespace, []).append((id, vector, metadata))

    async def query(self, namespace, vector, top_k, filter=None):
        if self.query_error is not None:
            raise self.query_error
        matches = [
            VectorMatch(id=record_id, score=1.0, metadata=metadata)
            for record_id, _, metadata in self.records.get(namespace, [])
            if not filter or all(metadata.get(k) == v for k, v in filter.items())
        ]
        return matches[:top_k]

    def add(self, user_id: int, content: str) -> None:
        records = self.records.setdefault(f"user-{user_id}", [])
        records.append((f"m{len(records)}", [0.0], {"user_id": str(user_id), "content": content}))


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the cache service."""

    def __init__(self, fail: bool = False):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise RedisError("connection refused")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ex

    async def delete(self, key):
        self._check()
        return 1 if self.data.pop(key, None) is not None else 0


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def store():
    return StubVectorStore()


@pytest.fixture
def cache():
    return CacheService(FakeRedis())


@pytest.fixture
def tasks():
    return BackgroundTasks()


@pytest.fixture
def events():
    return AffectionEventQueue()


@pytest.fixture
def locks():
    return SessionLockRegistry()


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------


async def make_room(
    mode: ChatMode = ChatMode.STORY,
    score: int = 0,
    energy: int = 100,
    secret: bool = False,
    nickname: str = "Master",
    username: str = "tester",
) -> ChatRoom:
    """Insert a user, the character and a room in their own committed session."""
    async with test_session_factory() as db:
        user = User(username=username, nickname=nickname, energy=energy, is_secret_mode=secret)
        character = Character(
            name=f"Airi-{username}",
            base_system_prompt="You are Airi, a polite maid.",
            llm_model_name="qwen-max",
            intro_narration="A rainy evening at the mansion.",
            first_greeting="(살짝 긴장한 얼굴로) 어서 오세요, 주인님.",
        )
        db.add_all([user, character])
        await db.flush()
        room = ChatRoom.open(user.id, character.id, mode)
        room.set_score(score)
        db.add(room)
        await db.commit()
        return room


@pytest.fixture
async def client():
    """Async HTTP test client with test DB override."""
    from lucidchat.main import app

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
