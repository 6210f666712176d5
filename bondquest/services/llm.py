# =============================================================================
# Multi-Provider LLM Abstraction — Pluggable AI Backend
# =============================================================================
#
# Provides a common interface for LLM completions, with concrete
# implementations for Anthropic (Claude), OpenAI and Google Gemini.
#
# Each AI surface of the app has its own provider:
#   - Persona chat & quiz insights → OpenAI (short, cheap replies)
#   - Admin/structured generation  → provider chain, Anthropic → OpenAI
#   - Onboarding conversations     → Gemini
#
# DESIGN DECISION: Protocol (structural typing) over ABC. Any class with
# the right `complete()` method works, including test fakes.
#
# DESIGN DECISION: Native SDKs, no wrappers. Each SDK is imported inside
# its provider's constructor so a deployment that only configures one
# vendor never pays for the others.
#
# DESIGN DECISION: Missing keys are a configuration state, not a crash.
# Constructors raise ValueError; the factory functions translate that into
# AIUnavailableError, which the API layer maps to 503 "AI features are not
# configured" or which callers catch to serve canned fallback text.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider     — system prompt as top-level kwarg
#   ├── OpenAIProvider        — system prompt as first message
#   ├── GeminiProvider        — system prompt as system_instruction,
#   │                           assistant turns use role "model"
#   ├── FallbackProvider      — tries providers in order
#   ├── get_chat_provider()       — OpenAI singleton
#   ├── get_generation_provider() — chain from generation_provider_order
#   └── get_conversation_provider() — Gemini singleton
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from bondquest.config import settings
from bondquest.services.errors import AIGenerationError, AIUnavailableError

logger = logging.getLogger(__name__)

AI_NOT_CONFIGURED = "AI features are not configured"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Normalises the different response formats into a single structure.
    """

    content: str           # The generated text
    model: str             # Model identifier
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Interface shared by every provider and by the fallback chain."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation messages as dicts with "role" and "content".
                Roles: "user", "assistant" (no "system"; use the system param).
            system: System prompt for the LLM.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).

        Returns:
            LLMResponse with generated text and usage metrics.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.anthropic_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if system:
            kwargs["system"] = system

        response = await self._client.messages.create(**kwargs)

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI
# ---------------------------------------------------------------------------


class OpenAIProvider:
    """OpenAI chat completions provider (system prompt as first message)."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No OpenAI API key configured. Set OPENAI_API_KEY in .env"
            )

        self._client = AsyncOpenAI(api_key=resolved_key)
        self._model = model or settings.openai_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized OpenAIProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using the OpenAI chat API."""
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=all_messages,
            max_tokens=max_tokens or self._max_tokens,
            temperature=self._temperature if temperature is None else temperature,
        )

        content = response.choices[0].message.content or ""

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 3: Google Gemini
# ---------------------------------------------------------------------------


class GeminiProvider:
    """
    Gemini provider via the google-genai SDK.

    Gemini names the assistant role "model" and expects the system prompt
    in GenerateContentConfig.system_instruction.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from google import genai

        resolved_key = api_key or settings.gemini_api_key
        if not resolved_key:
            raise ValueError(
                "No Gemini API key configured. Set GEMINI_API_KEY in .env"
            )

        self._client = genai.Client(api_key=resolved_key)
        self._model = model or settings.gemini_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized GeminiProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Gemini."""
        from google.genai import types

        contents = [
            types.Content(
                role="model" if m["role"] in ("assistant", "model") else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in messages
        ]

        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=self._temperature if temperature is None else temperature,
            max_output_tokens=max_tokens or self._max_tokens,
        )

        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=contents,
            config=config,
        )

        usage = response.usage_metadata
        return LLMResponse(
            content=response.text or "",
            model=self._model,
            input_tokens=(usage.prompt_token_count or 0) if usage else 0,
            output_tokens=(usage.candidates_token_count or 0) if usage else 0,
        )


# ---------------------------------------------------------------------------
# Fallback Chain
# ---------------------------------------------------------------------------


class FallbackProvider:
    """
    Tries each provider in order and returns the first success.

    A provider that raises (network error, rate limit, bad request) is
    logged and skipped. When every provider fails, AIGenerationError is
    raised with the last error message.
    """

    name = "fallback"

    def __init__(self, providers: list[LLMProvider]) -> None:
        if not providers:
            raise ValueError("FallbackProvider needs at least one provider")
        self._providers = providers

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        last_error: Exception | None = None
        for provider in self._providers:
            try:
                return await provider.complete(
                    messages,
                    system=system,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "LLM provider %s failed, trying next: %s",
                    getattr(provider, "name", type(provider).__name__),
                    e,
                )
        raise AIGenerationError(f"All AI providers failed: {last_error}")


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------
# Lazy singletons: SDK clients manage their own connection pools, so one
# per process is enough.
# ---------------------------------------------------------------------------

_PROVIDER_CLASSES = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}

_chat_provider: OpenAIProvider | None = None
_generation_provider: FallbackProvider | None = None
_conversation_provider: GeminiProvider | None = None


def get_chat_provider() -> OpenAIProvider:
    """Provider for persona chat and quiz insights. Raises AIUnavailableError."""
    global _chat_provider
    if _chat_provider is None:
        try:
            _chat_provider = OpenAIProvider()
        except ValueError as e:
            raise AIUnavailableError(AI_NOT_CONFIGURED) from e
    return _chat_provider


def get_generation_provider() -> FallbackProvider:
    """
    Provider chain for structured content generation.

    Built from `generation_provider_order`, skipping providers without a
    key. Raises AIUnavailableError when none is configured.
    """
    global _generation_provider
    if _generation_provider is None:
        providers: list[LLMProvider] = []
        for provider_name in settings.generation_provider_order:
            provider_cls = _PROVIDER_CLASSES.get(provider_name)
            if provider_cls is None:
                logger.warning("Unknown provider in generation order: %s", provider_name)
                continue
            try:
                providers.append(provider_cls())
            except ValueError:
                logger.info("Skipping unconfigured provider: %s", provider_name)

        if not providers:
            raise AIUnavailableError(AI_NOT_CONFIGURED)
        _generation_provider = FallbackProvider(providers)
    return _generation_provider


def get_conversation_provider() -> GeminiProvider:
    """Provider for onboarding conversations. Raises AIUnavailableError."""
    global _conversation_provider
    if _conversation_provider is None:
        try:
            _conversation_provider = GeminiProvider()
        except ValueError as e:
            raise AIUnavailableError(AI_NOT_CONFIGURED) from e
    return _conversation_provider
