"""LLM service - the generation gateway in front of DashScope (通义千问).

Wraps chat completion and text embedding behind one retry/backoff policy:
retryable statuses (401, 429, 5xx) are retried with exponential backoff,
anything else fails on the first attempt. Every call is bounded by a timeout,
and a timeout is never retried.

The DashScope SDK is synchronous, so calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Any, NamedTuple, Protocol

from lucidchat.config import settings
from lucidchat.core.exceptions import ExternalServiceError
from lucidchat.core.retry import BackendStatusError, RetryPolicy

logger = logging.getLogger(__name__)

REPETITION_PENALTY = 1.1


def _get_dashscope():
    """Lazy import of the dashscope SDK to avoid import-time crashes in test."""
    import dashscope

    dashscope.api_key = settings.DASHSCOPE_API_KEY
    return dashscope


class BackendResponse(NamedTuple):
    status_code: int
    payload: Any = None  # completion text or embedding vector
    message: str = ""


class GenerationBackend(Protocol):
    async def chat(
        self, model: str, messages: list[dict], temperature: float, penalty: bool
    ) -> BackendResponse: ...

    async def embed(self, model: str, text: str) -> BackendResponse: ...


class DashScopeBackend:
    """Raw DashScope calls; one attempt each, status reported as-is."""

    async def chat(
        self, model: str, messages: list[dict], temperature: float, penalty: bool
    ) -> BackendResponse:
        dashscope = _get_dashscope()
        params: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "result_format": "message",
            "temperature": temperature,
        }
        if penalty:
            params["repetition_penalty"] = REPETITION_PENALTY

        response = await asyncio.to_thread(dashscope.Generation.call, **params)
        if response.status_code != HTTPStatus.OK:
            return BackendResponse(response.status_code, None, response.message)
        return BackendResponse(HTTPStatus.OK, response.output.choices[0].message.content or "")

    async def embed(self, model: str, text: str) -> BackendResponse:
        dashscope = _get_dashscope()
        response = await asyncio.to_thread(dashscope.TextEmbedding.call, model=model, input=text)
        if response.status_code != HTTPStatus.OK:
            return BackendResponse(response.status_code, None, response.message)
        embeddings = response.output.get("embeddings") or []
        if not embeddings:
            return BackendResponse(HTTPStatus.BAD_GATEWAY, None, "empty embedding response")
        return BackendResponse(HTTPStatus.OK, [float(x) for x in embeddings[0]["embedding"]])


class GenerationGateway:
    def __init__(
        self,
        backend: GenerationBackend,
        policy: RetryPolicy | None = None,
        timeout: float = settings.LLM_TIMEOUT,
        embedding_model: str = settings.EMBEDDING_MODEL,
    ):
        self.backend = backend
        self.policy = policy or RetryPolicy(
            max_retries=settings.LLM_MAX_RETRIES, base_delay=settings.LLM_RETRY_BASE_DELAY
        )
        self.timeout = timeout
        self.embedding_model = embedding_model

    async def complete(
        self, model: str, messages: list[dict], temperature: float, penalty: bool = False
    ) -> str:
        """Return the completion text or raise ExternalServiceError."""
        payload = await self._call(
            f"chat[{model}]",
            lambda: self.backend.chat(model, messages, temperature, penalty),
        )
        return payload or ""

    async def embed(self, text: str) -> list[float]:
        return await self._call(
            f"embed[{self.embedding_model}]",
            lambda: self.backend.embed(self.embedding_model, text),
        )

    async def _call(self, label: str, request) -> Any:
        def log_retry(retry_state) -> None:
            logger.warning(
                "Retryable error on %s attempt %d/%d (%s), backing off %.1fs",
                label,
                retry_state.attempt_number,
                self.policy.max_retries + 1,
                retry_state.outcome.exception(),
                retry_state.next_action.sleep,
            )

        try:
            async for attempt in self.policy.retrying(before_sleep=log_retry):
                with attempt:
                    response = await asyncio.wait_for(request(), timeout=self.timeout)
                    if response.status_code != HTTPStatus.OK:
                        raise BackendStatusError(response.status_code, response.message)
                    return response.payload
        except BackendStatusError as e:
            if self.policy.is_retryable(e):
                logger.error("All %d attempts exhausted for %s", self.policy.max_retries + 1, label)
                raise ExternalServiceError(
                    f"{label} failed after {self.policy.max_retries + 1} attempts ({e.status_code})"
                ) from e
            logger.error("Non-retryable error %d on %s: %s", e.status_code, label, e.message)
            raise ExternalServiceError(f"{label} failed ({e.status_code}): {e.message}") from e
        except asyncio.TimeoutError as e:
            logger.error("%s timed out after %.1fs", label, self.timeout)
            raise ExternalServiceError(f"{label} timed out") from e
        except Exception as e:
            logger.exception("Transport failure on %s", label)
            raise ExternalServiceError(f"{label} failed: {e}") from e
