"""Tests for the chat service - a full turn against stubbed collaborators."""

import asyncio

import pytest
from sqlalchemy import select

from conftest import StubGateway, make_room
from lucidchat.core.exceptions import ExternalServiceError, InsufficientEnergyError, NotFoundError
from lucidchat.models.chat_log import ChatLog
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import ChatMode, ChatRole, EmotionTag, RelationTier
from lucidchat.models.user import User
from lucidchat.services.chat_service import ChatService
from lucidchat.services.memory_service import MemoryService


@pytest.fixture
def memory(gateway, store, session_factory, tasks):
    return MemoryService(gateway, store, session_factory, tasks)


@pytest.fixture
def chat(session_factory, gateway, memory, events, locks, cache):
    return ChatService(session_factory, gateway, memory, events, locks, cache, summary_every=0)


async def _logs(session_factory, room_id):
    async with session_factory() as db:
        result = await db.execute(
            select(ChatLog).where(ChatLog.room_id == room_id).order_by(ChatLog.id)
        )
        return list(result.scalars().all())


async def test_turn_parses_and_persists_reply(chat, gateway, events, session_factory):
    room = await make_room()
    gateway.script("(웃으며) 반가워요!")

    result = await chat.process_turn(room.id, "안녕, 아이리")

    assert result.reply == "반가워요!"
    assert result.emotion == EmotionTag.JOY
    assert result.affection_score == 0
    assert result.relation_tier == RelationTier.STRANGER

    logs = await _logs(session_factory, room.id)
    assert [log.role for log in logs] == [ChatRole.USER.value, ChatRole.ASSISTANT.value]
    assert logs[0].raw_content == "안녕, 아이리"
    assert logs[1].raw_content == "(웃으며) 반가워요!"
    assert logs[1].clean_content == "반가워요!"
    assert logs[1].emotion_tag == EmotionTag.JOY.value

    async with session_factory() as db:
        saved = await db.get(ChatRoom, room.id)
    assert saved.last_emotion == EmotionTag.JOY.value
    assert saved.last_active_at is not None

    event = await asyncio.wait_for(events.get(), timeout=1)
    assert (event.room_id, event.user_message) == (room.id, "안녕, 아이리")


async def test_gateway_is_called_with_context(chat, gateway):
    room = await make_room(nickname="별님")
    gateway.script("(미소 지으며) 네.")

    await chat.process_turn(room.id, "오늘 날씨 좋다")

    call = gateway.calls[-1]
    assert call["model"] == "qwen-max"
    assert call["temperature"] == 0.8
    assert call["penalty"] is True
    system, *history = call["messages"]
    assert system["role"] == "system"
    assert "별님" in system["content"]
    assert "STRANGER" in system["content"]
    assert history == [{"role": "user", "content": "오늘 날씨 좋다"}]


async def test_story_turn_retrieves_memory(chat, gateway, store):
    room = await make_room()
    store.add(room.user_id, "주인님은 비 오는 날을 좋아한다")
    gateway.script("(웃으며) 기억하고 있어요.")

    await chat.process_turn(room.id, "비 온다")

    system = gateway.calls[-1]["messages"][0]["content"]
    assert "주인님은 비 오는 날을 좋아한다" in system


async def test_sandbox_turn_skips_memory_and_scoring(chat, gateway, store, events):
    room = await make_room(mode=ChatMode.SANDBOX)
    store.add(room.user_id, "should not be used")
    gateway.script("그냥 얘기해요.")

    result = await chat.process_turn(room.id, "hi")

    assert result.reply == "그냥 얘기해요."
    assert gateway.embedded == []
    assert events.qsize() == 0


async def test_gateway_failure_keeps_the_user_message(chat, gateway, events, session_factory):
    room = await make_room()
    gateway.script(ExternalServiceError("backend down"))

    with pytest.raises(ExternalServiceError):
        await chat.process_turn(room.id, "들려요?")

    logs = await _logs(session_factory, room.id)
    assert [(log.role, log.raw_content) for log in logs] == [(ChatRole.USER.value, "들려요?")]
    assert events.qsize() == 0


async def test_energy_is_debited_per_mode(chat, gateway, session_factory):
    story = await make_room(energy=10, username="story-user")
    sandbox = await make_room(mode=ChatMode.SANDBOX, energy=10, username="sandbox-user")
    gateway.default = "네."

    assert (await chat.process_turn(story.id, "a")).energy == 8
    assert (await chat.process_turn(sandbox.id, "b")).energy == 9


async def test_soft_energy_limit_never_goes_negative(chat, gateway, session_factory):
    room = await make_room(energy=1)
    gateway.script("네.")

    result = await chat.process_turn(room.id, "hi")

    assert result.energy == 0
    async with session_factory() as db:
        assert (await db.get(User, room.user_id)).energy == 0


async def test_hard_energy_limit_rejects_turn(
    session_factory, gateway, memory, events, locks, cache
):
    chat = ChatService(session_factory, gateway, memory, events, locks, cache, hard_limit=True)
    room = await make_room(energy=1)

    with pytest.raises(InsufficientEnergyError):
        await chat.process_turn(room.id, "hi")

    assert await _logs(session_factory, room.id) == []
    assert gateway.calls == []


async def test_missing_room(chat):
    with pytest.raises(NotFoundError):
        await chat.process_turn(12345, "hello?")


class RecordingMemory(MemoryService):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.scheduled: list[tuple[int, int]] = []

    def schedule_summary(self, room_id, user_id):
        self.scheduled.append((room_id, user_id))


async def test_summary_is_scheduled_every_n_logs(
    session_factory, gateway, store, tasks, events, locks, cache
):
    memory = RecordingMemory(gateway, store, session_factory, tasks)
    chat = ChatService(session_factory, gateway, memory, events, locks, cache, summary_every=3)
    room = await make_room()
    gateway.default = "(웃으며) 네."

    # turn 1 writes logs 1-2, turn 2's user message is the 3rd entry
    await chat.process_turn(room.id, "one")
    assert memory.scheduled == []
    await chat.process_turn(room.id, "two")
    assert memory.scheduled == [(room.id, room.user_id)]


async def test_system_event_gets_a_reaction(chat, gateway, events, session_factory):
    room = await make_room()
    gateway.script("(얼굴을 붉히며) 저, 저한테요?")

    result = await chat.process_system_event(room.id, "주인님이 꽃다발을 건넨다.")

    assert result.emotion == EmotionTag.SHY
    logs = await _logs(session_factory, room.id)
    assert [log.role for log in logs] == [ChatRole.SYSTEM.value, ChatRole.ASSISTANT.value]
    narration = gateway.calls[-1]["messages"][-1]
    assert narration == {"role": "user", "content": "[NARRATION]\n주인님이 꽃다발을 건넨다."}
    assert events.qsize() == 0


async def test_turn_evicts_cached_room_info(chat, gateway, cache):
    room = await make_room()
    await cache.cache_room_info(room.id, {"id": room.id}, ttl=60)
    gateway.script("네.")

    await chat.process_turn(room.id, "hi")

    assert await cache.get_room_info(room.id) is None


class SlowGateway(StubGateway):
    """Sleeps inside ``complete`` and records how many calls overlap."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.active = 0
        self.max_active = 0

    async def complete(self, model, messages, temperature, penalty=False):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.05)
            return await super().complete(model, messages, temperature, penalty)
        finally:
            self.active -= 1


async def test_turns_on_one_room_are_serialized(
    session_factory, memory, events, locks, cache
):
    gateway = SlowGateway(default="(웃으며) 네.")
    chat = ChatService(session_factory, gateway, memory, events, locks, cache, summary_every=0)
    room = await make_room()

    await asyncio.gather(chat.process_turn(room.id, "one"), chat.process_turn(room.id, "two"))

    assert gateway.max_active == 1
    assert not locks.is_locked(room.id)
    logs = await _logs(session_factory, room.id)
    assert [log.role for log in logs] == [
        ChatRole.USER.value,
        ChatRole.ASSISTANT.value,
        ChatRole.USER.value,
        ChatRole.ASSISTANT.value,
    ]
    # the second turn sees the first turn's exchange as history
    second = [m["content"] for m in gateway.calls[1]["messages"][1:]]
    assert second[:2] == [logs[0].raw_content, "(웃으며) 네."]
