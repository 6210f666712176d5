# =============================================================================
# Unit Tests — Onboarding Conversations
# =============================================================================
#
# Test groups:
#   1. Prompt resolution and history formatting
#   2. send_message with a live fake, a failing fake and no provider
#   3. Profile insight extraction and the generic fallback set
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest

from bondquest.services import conversation
from bondquest.services.errors import AIUnavailableError, NotFoundError
from bondquest.services.llm import LLMResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@dataclass
class FakeSession:
    id: int = 1
    user_id: int = 1
    session_type: str = "onboarding"


@dataclass
class FakeMessage:
    sender: str
    message: str


class FakeLLM:
    def __init__(self, reply: str = "", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    async def complete(self, messages, system=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "system": system})
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply, model="gemini-fake", input_tokens=1, output_tokens=1)


def _unconfigured():
    raise AIUnavailableError("AI features are not configured")


def _storage(session=None, history=None) -> AsyncMock:
    storage = AsyncMock()
    storage.get_conversation_session.return_value = session
    storage.list_conversation_messages.return_value = history or []
    storage.create_conversation_message.side_effect = lambda **values: FakeMessage(
        values["sender"], values["message"],
    )
    storage.create_profile_insight.side_effect = lambda **values: values
    return storage


# ---------------------------------------------------------------------------
# 1. Prompts & history
# ---------------------------------------------------------------------------


class TestPrompts:
    def test_stage_shorthand_expands(self):
        prompt = conversation.resolve_system_context("onboarding_goals")
        assert prompt == conversation.get_onboarding_prompt("goals")
        assert "relationship goals" in prompt

    def test_unknown_stage_gets_welcome(self):
        assert conversation.get_onboarding_prompt("nope") == conversation.get_onboarding_prompt("welcome")

    def test_plain_context_passes_through(self):
        assert conversation.resolve_system_context("Be brief.") == "Be brief."
        assert conversation.resolve_system_context(None) is None

    def test_six_stages(self):
        assert conversation.ONBOARDING_STAGES == (
            "welcome", "relationship_status", "communication", "interests", "goals", "wrap_up",
        )


class TestFormatHistory:
    def test_drops_system_and_maps_roles(self):
        turns = conversation.format_history([
            FakeMessage("system", "setup"),
            FakeMessage("user", "hi"),
            FakeMessage("ai", "hello!"),
        ])
        assert turns == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello!"},
        ]

    def test_inserts_leading_user_turn(self):
        turns = conversation.format_history([FakeMessage("ai", "Welcome!")])
        assert turns[0] == {"role": "user", "content": "Hello"}
        assert turns[1]["role"] == "assistant"

    def test_empty_history(self):
        assert conversation.format_history([]) == [{"role": "user", "content": "Hello"}]


class TestFallbackHelpers:
    def test_onboarding_replies_follow_user_count(self):
        first = conversation.fallback_reply("onboarding", 1)
        second = conversation.fallback_reply("onboarding", 2)
        assert first.startswith("Hello and welcome to BondQuest!")
        assert second.startswith("It's great to meet you!")
        assert conversation.fallback_reply("onboarding", 9).startswith("I understand!")

    def test_other_sessions_get_generic_reply(self):
        assert conversation.fallback_reply("general", 1) == conversation.GENERIC_FALLBACK_REPLY

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("high", 0.9), ("LOW", 0.3), ("unsure", 0.6), (0.75, 0.75), (80, 0.8), (True, 0.6)],
    )
    def test_confidence_value(self, raw, expected):
        assert conversation.confidence_value(raw) == pytest.approx(expected)


# ---------------------------------------------------------------------------
# 2. send_message
# ---------------------------------------------------------------------------


class TestSendMessage:
    def test_unknown_session(self):
        with pytest.raises(NotFoundError):
            _run(conversation.send_message(_storage(), 99, "hi"))

    def test_stores_both_messages(self):
        storage = _storage(session=FakeSession(), history=[FakeMessage("ai", "Welcome!")])
        llm = FakeLLM(reply=" Nice to meet you. ")

        user_msg, ai_msg = _run(conversation.send_message(
            storage, 1, "I'm Sam", "onboarding_interests", llm_factory=lambda: llm,
        ))

        assert user_msg.sender == "user" and user_msg.message == "I'm Sam"
        assert ai_msg.sender == "ai" and ai_msg.message == "Nice to meet you."
        call = llm.calls[0]
        assert call["system"] == conversation.get_onboarding_prompt("interests")
        assert call["messages"][0] == {"role": "user", "content": "Hello"}
        assert call["messages"][-1] == {"role": "user", "content": "I'm Sam"}

    def test_onboarding_defaults_to_welcome_prompt(self):
        storage = _storage(session=FakeSession())
        llm = FakeLLM(reply="Hi!")
        _run(conversation.send_message(storage, 1, "hey", llm_factory=lambda: llm))
        assert llm.calls[0]["system"] == conversation.get_onboarding_prompt("welcome")

    def test_unconfigured_uses_scripted_reply(self):
        storage = _storage(session=FakeSession(), history=[FakeMessage("user", "hi")])
        _, ai_msg = _run(conversation.send_message(storage, 1, "again", llm_factory=_unconfigured))
        assert ai_msg.message == conversation.fallback_reply("onboarding", 2)

    def test_provider_error_uses_scripted_reply(self):
        storage = _storage(session=FakeSession(session_type="general"))
        llm = FakeLLM(error=RuntimeError("quota"))
        _, ai_msg = _run(conversation.send_message(storage, 1, "hi", llm_factory=lambda: llm))
        assert ai_msg.message == conversation.GENERIC_FALLBACK_REPLY


# ---------------------------------------------------------------------------
# 3. Insight extraction
# ---------------------------------------------------------------------------


class TestExtractProfileInsights:
    _HISTORY = [
        FakeMessage("ai", "Welcome!"),
        FakeMessage("user", "We love hiking."),
        FakeMessage("user", "Words of affirmation matter to me."),
    ]

    def test_saves_parsed_insights(self):
        storage = _storage(session=FakeSession(), history=self._HISTORY)
        reply = """```json
[
  {"insightType": "Shared interests", "insight": "They hike together.", "confidenceScore": "high"},
  {"insightType": "Relationship preferences", "insight": "Affirmation", "confidenceScore": 0.5},
  {"insight": "missing type"},
  "junk"
]
```"""
        saved = _run(conversation.extract_profile_insights(
            storage, 1, user_id=7, llm_factory=lambda: FakeLLM(reply=reply),
        ))
        assert [s["insight_type"] for s in saved] == ["Shared interests", "Relationship preferences"]
        assert saved[0]["confidence_score"] == 0.9
        assert saved[0]["user_id"] == 7
        assert saved[0]["metadata_"] == {"session_id": 1}

    def test_unparseable_reply_falls_back_to_generic_insights(self):
        storage = _storage(session=FakeSession(), history=self._HISTORY)
        saved = _run(conversation.extract_profile_insights(
            storage, 1, user_id=7, llm_factory=lambda: FakeLLM(reply="I can't do that."),
        ))
        assert len(saved) == 3
        assert all(s["metadata_"]["is_fallback"] for s in saved)

    def test_fallback_needs_two_user_messages(self):
        history = [FakeMessage("ai", "Welcome!"), FakeMessage("user", "hi")]
        storage = _storage(session=FakeSession(), history=history)
        saved = _run(conversation.extract_profile_insights(
            storage, 1, user_id=7, llm_factory=_unconfigured,
        ))
        assert saved == []
        storage.create_profile_insight.assert_not_awaited()

    def test_empty_conversation(self):
        storage = _storage(session=FakeSession(), history=[])
        assert _run(conversation.extract_profile_insights(storage, 1, user_id=7)) == []

    def test_unknown_session(self):
        with pytest.raises(NotFoundError):
            _run(conversation.extract_profile_insights(_storage(), 1, user_id=7))
