"""Tests for the affinity service - delta parsing, scoring and promotions."""

import asyncio

import pytest
from sqlalchemy import select

from conftest import make_room
from lucidchat.core.events import AffectionDeltaEvent
from lucidchat.core.exceptions import ExternalServiceError
from lucidchat.models.chat_log import ChatLog
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import ChatRole, RelationTier
from lucidchat.services.affinity_service import AffectionScorer, AffectionWorker, parse_delta


@pytest.mark.parametrize(
    "raw,delta",
    [
        ("+3", 3),
        ("-10", -5),
        ("abc", 0),
        ("", 0),
        (None, 0),
        ("점수: +2점", 2),
        ("4", 4),
        ("99", 5),
        ("3-2", 0),
        ("+3 (range -5 to 5)", 0),
        ("--5", 0),
    ],
)
def test_parse_delta(raw, delta):
    assert parse_delta(raw) == delta


@pytest.fixture
def scorer(gateway, session_factory, locks, cache):
    return AffectionScorer(gateway, session_factory, locks, cache)


async def _reload(session_factory, room_id):
    async with session_factory() as db:
        room = await db.get(ChatRoom, room_id)
        logs = (await db.execute(select(ChatLog).where(ChatLog.room_id == room_id))).scalars().all()
        return room, list(logs)


async def test_scorer_applies_delta(scorer, gateway, session_factory):
    room = await make_room(score=10)
    gateway.script("+3")

    change = await scorer.score(AffectionDeltaEvent(room.id, "오늘도 수고했어요"))

    assert change.score == 13
    saved, _ = await _reload(session_factory, room.id)
    assert saved.affection_score == 13
    assert saved.relation_tier == RelationTier.STRANGER.value
    call = gateway.calls[0]
    assert call["temperature"] == 0.0
    assert "오늘도 수고했어요" in call["messages"][0]["content"]


async def test_scorer_skips_deleted_room(scorer, gateway):
    assert await scorer.score(AffectionDeltaEvent(9999, "hello")) is None
    assert gateway.calls == []


async def test_promotion_appends_system_log(scorer, gateway, session_factory):
    room = await make_room(score=18)
    gateway.script("+5")

    change = await scorer.score(AffectionDeltaEvent(room.id, "선물이에요"))

    assert change.promoted
    saved, logs = await _reload(session_factory, room.id)
    assert saved.relation_tier == RelationTier.ACQUAINTANCE.value
    system_logs = [log for log in logs if log.role == ChatRole.SYSTEM.value]
    assert len(system_logs) == 1
    assert system_logs[0].raw_content.startswith("[PROMOTION:ACQUAINTANCE]")
    assert "STUDY" in system_logs[0].raw_content


async def test_falling_below_zero_is_a_silent_demotion(scorer, gateway, session_factory):
    room = await make_room(score=2)
    gateway.script("-5")

    change = await scorer.score(AffectionDeltaEvent(room.id, "꺼져"))

    assert change.tier == RelationTier.ENEMY
    saved, logs = await _reload(session_factory, room.id)
    assert saved.affection_score == -3
    assert logs == []


async def test_score_is_clamped_to_bounds(session_factory, gateway, locks, cache):
    room = await make_room(score=99)
    scorer = AffectionScorer(gateway, session_factory, locks, cache, score_min=-100, score_max=100)
    gateway.script("+5")

    change = await scorer.score(AffectionDeltaEvent(room.id, "사랑해요"))

    assert change.score == 100


async def test_scoring_evicts_cached_room_info(scorer, gateway, cache):
    room = await make_room()
    await cache.cache_room_info(room.id, {"id": room.id}, ttl=60)
    gateway.script("+1")

    await scorer.score(AffectionDeltaEvent(room.id, "hi"))

    assert await cache.get_room_info(room.id) is None


async def test_worker_survives_gateway_failure(scorer, gateway, events, session_factory):
    room = await make_room(score=0)
    gateway.script(ExternalServiceError("down"), "+2")
    worker = AffectionWorker(events, scorer)
    worker.start()
    try:
        events.emit(AffectionDeltaEvent(room.id, "first"))
        events.emit(AffectionDeltaEvent(room.id, "second"))
        await asyncio.wait_for(events.join(), timeout=5)
    finally:
        await worker.stop()

    saved, _ = await _reload(session_factory, room.id)
    assert saved.affection_score == 2


async def test_scorer_waits_for_the_room_lock(scorer, gateway, locks, session_factory):
    room = await make_room(score=10)
    gateway.script("+2")

    async with locks.hold(room.id):
        assert locks.is_locked(room.id)
        task = asyncio.create_task(scorer.score(AffectionDeltaEvent(room.id, "고마워요")))
        for _ in range(100):
            if gateway.calls:
                break
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.01)
        assert gateway.calls
        assert not task.done()
        saved, _ = await _reload(session_factory, room.id)
        assert saved.affection_score == 10

    change = await asyncio.wait_for(task, timeout=1)
    assert change.score == 12
    assert not locks.is_locked(room.id)
