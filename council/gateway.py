"""
Text generation boundary.

The core only sees ``TextGenerationGateway.generate``. ``ProviderGateway`` routes
each judge to its configured provider and calls it through the vendor SDKs
(``anthropic.AsyncAnthropic``, ``openai.AsyncOpenAI``). Any failure surfaces as
``GenerationError``; an empty completion is a failure, never a valid answer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, TypedDict

import anthropic
import httpx
import openai

from .config import Settings, settings as default_settings
from .errors import GenerationError
from .judges import JudgeName
from .model_config import ANTHROPIC, OPENAI, ModelRoute, resolve_model

logger = logging.getLogger(__name__)

OPENING_CUE = "The interview is beginning. Please ask your opening question."


class ChatMessage(TypedDict):
    role: str  # "user" | "assistant"
    content: str


class TextGenerationGateway(ABC):
    """Generates one judge utterance from a system directive and chat history."""

    @abstractmethod
    async def generate(
        self,
        judge: JudgeName,
        system: str,
        history: list[ChatMessage],
        max_tokens: int,
    ) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


def with_opening_cue(history: list[ChatMessage]) -> list[ChatMessage]:
    """Providers reject empty or assistant-first conversations."""
    if not history:
        return [{"role": "user", "content": OPENING_CUE}]
    if history[0]["role"] != "user":
        return [{"role": "user", "content": OPENING_CUE}, *history]
    return list(history)


def _anthropic_text(message: Any) -> str:
    texts = [
        block.text
        for block in getattr(message, "content", None) or []
        if getattr(block, "type", None) == "text" and block.text
    ]
    return "".join(texts).strip()


def _openai_text(completion: Any) -> str:
    choices = getattr(completion, "choices", None) or []
    if not choices or choices[0].message is None:
        return ""
    content = choices[0].message.content
    return content.strip() if isinstance(content, str) else ""


class ProviderGateway(TextGenerationGateway):
    """Async gateway over the Anthropic Messages and OpenAI Chat Completions SDKs.

    SDK clients are built on first use so a missing key for one provider only
    fails the judges routed to it. ``transport`` is handed to the underlying
    httpx client and exists for tests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self._transport = transport
        self._anthropic: anthropic.AsyncAnthropic | None = None
        self._openai: openai.AsyncOpenAI | None = None

    def _http_client(self) -> httpx.AsyncClient | None:
        if self._transport is None:
            return None
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self._settings.generation_timeout),
        )

    def _anthropic_client(self, judge: JudgeName) -> anthropic.AsyncAnthropic:
        if self._anthropic is None:
            if not self._settings.anthropic_api_key:
                raise GenerationError("COUNCIL_ANTHROPIC_API_KEY is not set", judge=judge.value)
            self._anthropic = anthropic.AsyncAnthropic(
                api_key=self._settings.anthropic_api_key,
                base_url=self._settings.anthropic_base_url,
                timeout=self._settings.generation_timeout,
                max_retries=self._settings.generation_max_retries,
                http_client=self._http_client(),
            )
        return self._anthropic

    def _openai_client(self, judge: JudgeName) -> openai.AsyncOpenAI:
        if self._openai is None:
            if not self._settings.openai_api_key:
                raise GenerationError("COUNCIL_OPENAI_API_KEY is not set", judge=judge.value)
            self._openai = openai.AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                base_url=self._settings.openai_base_url,
                timeout=self._settings.generation_timeout,
                max_retries=self._settings.generation_max_retries,
                http_client=self._http_client(),
            )
        return self._openai

    async def aclose(self) -> None:
        if self._anthropic is not None:
            await self._anthropic.close()
            self._anthropic = None
        if self._openai is not None:
            await self._openai.close()
            self._openai = None

    async def generate(
        self,
        judge: JudgeName,
        system: str,
        history: list[ChatMessage],
        max_tokens: int,
    ) -> str:
        route = resolve_model(judge)
        messages = with_opening_cue(history)
        logger.debug("Generating for %s via %s (%d messages)", judge, route, len(messages))

        if route.provider == ANTHROPIC:
            text = await self._generate_anthropic(judge, route, system, messages, max_tokens)
        elif route.provider == OPENAI:
            text = await self._generate_openai(judge, route, system, messages, max_tokens)
        else:
            raise GenerationError(f"Unknown provider {route.provider!r}", judge=judge.value)

        if not text:
            raise GenerationError(
                f"Empty completion from {route} for {judge}",
                judge=judge.value,
                provider=route.provider,
            )
        return text

    async def _generate_anthropic(
        self,
        judge: JudgeName,
        route: ModelRoute,
        system: str,
        messages: list[ChatMessage],
        max_tokens: int,
    ) -> str:
        client = self._anthropic_client(judge)
        try:
            message = await client.messages.create(
                model=route.model,
                max_tokens=max_tokens,
                system=system,
                messages=messages,
            )
        except anthropic.APIStatusError as e:
            raise GenerationError(
                f"anthropic API error {e.status_code} for {judge}: {e.message}",
                judge=judge.value,
                provider=ANTHROPIC,
                status_code=e.status_code,
            ) from e
        except anthropic.APIError as e:
            raise GenerationError(
                f"anthropic request failed for {judge}: {e}", judge=judge.value, provider=ANTHROPIC
            ) from e
        return _anthropic_text(message)

    async def _generate_openai(
        self,
        judge: JudgeName,
        route: ModelRoute,
        system: str,
        messages: list[ChatMessage],
        max_tokens: int,
    ) -> str:
        client = self._openai_client(judge)
        try:
            completion = await client.chat.completions.create(
                model=route.model,
                max_tokens=max_tokens,
                messages=[{"role": "system", "content": system}, *messages],
            )
        except openai.APIStatusError as e:
            raise GenerationError(
                f"openai API error {e.status_code} for {judge}: {e.message}",
                judge=judge.value,
                provider=OPENAI,
                status_code=e.status_code,
            ) from e
        except openai.APIError as e:
            raise GenerationError(
                f"openai request failed for {judge}: {e}", judge=judge.value, provider=OPENAI
            ) from e
        return _openai_text(completion)
