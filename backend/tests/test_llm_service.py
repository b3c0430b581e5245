"""Tests for the generation gateway - retry, backoff and error mapping."""

import asyncio
from collections import deque

import pytest

from lucidchat.core.exceptions import ExternalServiceError
from lucidchat.core.retry import RetryPolicy
from lucidchat.services.llm_service import BackendResponse, GenerationGateway


class ScriptedBackend:
    def __init__(self, *responses):
        self.responses = deque(responses)
        self.chat_calls = 0
        self.embed_calls = 0
        self.last_request = None

    async def chat(self, model, messages, temperature, penalty):
        self.chat_calls += 1
        self.last_request = (model, messages, temperature, penalty)
        return self.responses.popleft()

    async def embed(self, model, text):
        self.embed_calls += 1
        return self.responses.popleft()


class SlowBackend:
    async def chat(self, model, messages, temperature, penalty):
        await asyncio.sleep(1)
        return BackendResponse(200, "late")

    async def embed(self, model, text):
        await asyncio.sleep(1)
        return BackendResponse(200, [0.0])


@pytest.fixture
def delays():
    return []


@pytest.fixture
def policy(delays):
    async def record(seconds):
        delays.append(seconds)

    return RetryPolicy(max_retries=3, base_delay=0.5, sleep=record)


async def test_success_first_try(policy, delays):
    backend = ScriptedBackend(BackendResponse(200, "(웃으며) 안녕하세요"))
    gateway = GenerationGateway(backend, policy=policy)

    reply = await gateway.complete("qwen-max", [{"role": "user", "content": "hi"}], 0.8, penalty=True)

    assert reply == "(웃으며) 안녕하세요"
    assert backend.chat_calls == 1
    assert backend.last_request[2:] == (0.8, True)
    assert delays == []


async def test_retryable_failures_back_off_exponentially(policy, delays):
    backend = ScriptedBackend(
        BackendResponse(429, None, "rate limited"),
        BackendResponse(503, None, "unavailable"),
        BackendResponse(200, "ok"),
    )
    gateway = GenerationGateway(backend, policy=policy)

    assert await gateway.complete("qwen-max", [], 0.8) == "ok"
    assert backend.chat_calls == 3
    assert delays == [0.5, 1.0]


async def test_non_retryable_failure_is_attempted_once(policy, delays):
    backend = ScriptedBackend(BackendResponse(400, None, "bad request"))
    gateway = GenerationGateway(backend, policy=policy)

    with pytest.raises(ExternalServiceError, match="400"):
        await gateway.complete("qwen-max", [], 0.8)
    assert backend.chat_calls == 1
    assert delays == []


async def test_exhausted_retries_raise_external_error(policy, delays):
    backend = ScriptedBackend(*[BackendResponse(500, None, "boom")] * 4)
    gateway = GenerationGateway(backend, policy=policy)

    with pytest.raises(ExternalServiceError, match="4 attempts"):
        await gateway.complete("qwen-max", [], 0.8)
    assert backend.chat_calls == 4
    assert delays == [0.5, 1.0, 2.0]


async def test_unauthorized_is_retried(policy, delays):
    backend = ScriptedBackend(BackendResponse(401, None, "expired"), BackendResponse(200, "ok"))
    gateway = GenerationGateway(backend, policy=policy)

    assert await gateway.complete("qwen-max", [], 0.8) == "ok"
    assert delays == [0.5]


async def test_timeout_is_mapped_and_not_retried(policy, delays):
    gateway = GenerationGateway(SlowBackend(), policy=policy, timeout=0.01)

    with pytest.raises(ExternalServiceError, match="timed out"):
        await gateway.complete("qwen-max", [], 0.8)
    assert delays == []


async def test_embed_goes_through_the_same_policy(policy, delays):
    backend = ScriptedBackend(BackendResponse(502, None, "gateway"), BackendResponse(200, [0.1, 0.2]))
    gateway = GenerationGateway(backend, policy=policy)

    assert await gateway.embed("기억") == [0.1, 0.2]
    assert backend.embed_calls == 2
    assert delays == [0.5]


async def test_none_completion_becomes_empty_string(policy):
    gateway = GenerationGateway(ScriptedBackend(BackendResponse(200, None)), policy=policy)
    assert await gateway.complete("qwen-max", [], 0.8) == ""
