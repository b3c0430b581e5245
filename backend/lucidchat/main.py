"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lucidchat.api.deps import Services
from lucidchat.config import settings
from lucidchat.core.events import AffectionEventQueue, BackgroundTasks
from lucidchat.core.exceptions import AppError
from lucidchat.core.session_lock import session_locks
from lucidchat.db.database import Base, async_session, engine
from lucidchat.db.redis import close_redis, get_redis_client, redis_available
from lucidchat.services import energy_service
from lucidchat.services.affinity_service import AffectionScorer, AffectionWorker
from lucidchat.services.cache_service import CacheService
from lucidchat.services.character_service import seed_character
from lucidchat.services.chat_service import ChatService
from lucidchat.services.ending_service import EndingService
from lucidchat.services.llm_service import DashScopeBackend, GenerationGateway
from lucidchat.services.memory_service import MemoryService
from lucidchat.services.room_service import RoomService
from lucidchat.services.vector_store import ChromaVectorStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables (dev only; use Alembic in production)
    import lucidchat.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as db:
        await seed_character(db, settings.DEFAULT_CHARACTER)
        await db.commit()

    gateway = GenerationGateway(DashScopeBackend())
    cache = CacheService(get_redis_client())
    tasks = BackgroundTasks()
    events = AffectionEventQueue()
    memory = MemoryService(gateway, ChromaVectorStore(), async_session, tasks)

    app.state.services = Services(
        rooms=RoomService(cache),
        chat=ChatService(async_session, gateway, memory, events, session_locks, cache),
        endings=EndingService(async_session, gateway, memory, session_locks, cache),
        memory=memory,
    )
    worker = AffectionWorker(events, AffectionScorer(gateway, async_session, session_locks, cache))
    worker.start()
    regen = asyncio.create_task(energy_service.run_regen_loop(async_session), name="energy-regen")
    logger.info("Lucid Chat started (%s)", settings.APP_ENV)

    yield

    # Shutdown: stop background work, then close connections
    regen.cancel()
    await worker.stop()
    await tasks.drain()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title="Lucid Chat API",
    description="Backend API for Lucid Chat - a narrative chat game with an AI companion",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- Routes ---
from lucidchat.api.routes import chat, memory  # noqa: E402

app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(memory.router, prefix="/api/memory", tags=["memory"])


@app.get("/health")
async def health_check():
    return {"status": "ok", "redis": await redis_available()}
