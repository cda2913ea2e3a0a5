"""LLM access over the OpenAI-compatible chat completions API."""

from __future__ import annotations

import json
import logging
import re
import time
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from typing import Any

import httpx

from core.config import settings
from shorts.errors import StageError

logger = logging.getLogger(__name__)

OLLAMA_PING_TIMEOUT_SECONDS = 2.0

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_BARE_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True, slots=True)
class ProviderHandle:
    """Resolved LLM provider, valid until ``expires_at`` (monotonic seconds)."""

    name: str
    base_url: str
    model: str
    api_key: str
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.monotonic()) >= self.expires_at


@dataclass(frozen=True, slots=True)
class Completion:
    data: dict[str, Any]
    tokens_used: int


def extract_json(content: str) -> dict[str, Any]:
    """Parse a JSON object out of a model reply, tolerating fences and chatter."""
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    for pattern in (_FENCED_JSON, _BARE_OBJECT):
        match = pattern.search(content)
        if not match:
            continue
        candidate = match.group(1) if pattern is _FENCED_JSON else match.group(0)
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    raise StageError("LLM reply does not contain valid JSON", "LLM_INVALID_JSON")


class LLMClient:
    """
    Chat client that prefers a local Ollama server and falls back to OpenAI.

    The resolved provider is cached on the instance for
    ``llm_provider_ttl_seconds`` and re-resolved afterwards.
    """

    def __init__(self, http: httpx.AsyncClient | None = None) -> None:
        self._http = http
        self._handle: ProviderHandle | None = None

    @property
    def handle(self) -> ProviderHandle | None:
        return self._handle

    def reset(self) -> None:
        self._handle = None

    async def provider(self) -> ProviderHandle:
        if self._handle is None or self._handle.is_expired():
            self._handle = await self._resolve()
        return self._handle

    async def _resolve(self) -> ProviderHandle:
        expires_at = time.monotonic() + settings.llm_provider_ttl_seconds
        if settings.ollama_enabled and await self._ollama_available():
            logger.info("Using Ollama (%s)", settings.ollama_model)
            return ProviderHandle(
                name="ollama",
                base_url=f"{settings.ollama_base_url.rstrip('/')}/v1",
                model=settings.ollama_model,
                api_key="ollama",
                expires_at=expires_at,
            )

        if not settings.openai_api_key:
            raise StageError(
                "Neither Ollama nor OpenAI is available; set openai_api_key or start Ollama",
                "LLM_UNAVAILABLE",
            )
        logger.info("Using OpenAI (%s)", settings.openai_model)
        return ProviderHandle(
            name="openai",
            base_url=settings.openai_base_url.rstrip("/"),
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            expires_at=expires_at,
        )

    async def _ollama_available(self) -> bool:
        url = f"{settings.ollama_base_url.rstrip('/')}/api/tags"
        try:
            async with self._client() as client:
                response = await client.get(url, timeout=OLLAMA_PING_TIMEOUT_SECONDS)
            return response.is_success
        except httpx.HTTPError:
            return False

    def _client(self) -> AbstractAsyncContextManager[httpx.AsyncClient]:
        if self._http is not None:
            return nullcontext(self._http)
        return httpx.AsyncClient(timeout=settings.llm_timeout_seconds)

    async def complete_json(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        json_mode: bool = True,
    ) -> Completion:
        """Run a chat completion and parse its reply as a JSON object."""
        provider = await self.provider()
        payload: dict[str, Any] = {
            "model": provider.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{provider.base_url}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {provider.api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise StageError(f"LLM request failed: {e}", "LLM_FAILED") from e

        body = response.json()
        choices = body.get("choices") or []
        content = (choices[0].get("message") or {}).get("content") if choices else None
        if not content:
            raise StageError("LLM returned no content", "LLM_EMPTY")

        tokens = int((body.get("usage") or {}).get("total_tokens") or 0)
        return Completion(data=extract_json(content), tokens_used=tokens)

