# =============================================================================
# Unit Tests — LLM Providers, Fallback Chain & Factories
# =============================================================================
#
# No SDK client is ever constructed against a real API: provider classes
# are patched or built with empty keys to exercise the configuration paths.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from bondquest.services import llm
from bondquest.services.errors import AIGenerationError, AIUnavailableError
from bondquest.services.llm import FallbackProvider, LLMResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeProvider:
    def __init__(self, name: str, reply: str | None = None, error: Exception | None = None):
        self.name = name
        self.reply = reply
        self.error = error
        self.calls = 0

    async def complete(self, messages, system=None, temperature=None, max_tokens=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply or "", model=self.name, input_tokens=0, output_tokens=0)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Factory singletons must not leak between tests."""
    llm._chat_provider = None
    llm._generation_provider = None
    llm._conversation_provider = None
    yield
    llm._chat_provider = None
    llm._generation_provider = None
    llm._conversation_provider = None


class TestFallbackProvider:
    def test_first_success_wins(self):
        first = FakeProvider("anthropic", reply="from anthropic")
        second = FakeProvider("openai", reply="from openai")
        response = _run(FallbackProvider([first, second]).complete([{"role": "user", "content": "hi"}]))
        assert response.content == "from anthropic"
        assert second.calls == 0

    def test_falls_through_to_next_provider(self):
        first = FakeProvider("anthropic", error=RuntimeError("overloaded"))
        second = FakeProvider("openai", reply="from openai")
        response = _run(FallbackProvider([first, second]).complete([{"role": "user", "content": "hi"}]))
        assert response.content == "from openai"
        assert first.calls == 1

    def test_all_fail_raises_generation_error(self):
        chain = FallbackProvider([
            FakeProvider("anthropic", error=RuntimeError("a")),
            FakeProvider("openai", error=RuntimeError("b")),
        ])
        with pytest.raises(AIGenerationError) as exc_info:
            _run(chain.complete([{"role": "user", "content": "hi"}]))
        assert "b" in exc_info.value.message

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            FallbackProvider([])


class TestFactories:
    def test_chat_provider_unconfigured_raises_503(self):
        with patch.object(llm.settings, "openai_api_key", ""):
            with pytest.raises(AIUnavailableError) as exc_info:
                llm.get_chat_provider()
        assert exc_info.value.status_code == 503
        assert exc_info.value.message == llm.AI_NOT_CONFIGURED

    def test_conversation_provider_unconfigured_raises_503(self):
        with patch.object(llm.settings, "gemini_api_key", ""):
            with pytest.raises(AIUnavailableError):
                llm.get_conversation_provider()

    def test_generation_chain_skips_unconfigured(self):
        anthropic_cls = MagicMock(side_effect=ValueError("no key"))
        openai_instance = FakeProvider("openai", reply="ok")
        openai_cls = MagicMock(return_value=openai_instance)

        with (
            patch.object(llm.settings, "generation_provider_order", ["anthropic", "openai", "mystery"]),
            patch.dict(llm._PROVIDER_CLASSES, {"anthropic": anthropic_cls, "openai": openai_cls}),
        ):
            provider = llm.get_generation_provider()

        assert isinstance(provider, FallbackProvider)
        assert provider._providers == [openai_instance]

    def test_generation_chain_none_configured_raises_503(self):
        failing = MagicMock(side_effect=ValueError("no key"))
        with (
            patch.object(llm.settings, "generation_provider_order", ["anthropic", "openai"]),
            patch.dict(llm._PROVIDER_CLASSES, {"anthropic": failing, "openai": failing}),
        ):
            with pytest.raises(AIUnavailableError):
                llm.get_generation_provider()

    def test_generation_chain_is_cached(self):
        openai_cls = MagicMock(return_value=FakeProvider("openai", reply="ok"))
        with (
            patch.object(llm.settings, "generation_provider_order", ["openai"]),
            patch.dict(llm._PROVIDER_CLASSES, {"openai": openai_cls}),
        ):
            assert llm.get_generation_provider() is llm.get_generation_provider()
        openai_cls.assert_called_once()
