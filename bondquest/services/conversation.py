# =============================================================================
# Onboarding Conversations — Gemini Chat & Profile Insight Extraction
# =============================================================================
#
# New users chat with a friendly assistant that walks through onboarding
# stages (welcome → relationship_status → communication → interests →
# goals → wrap_up). Afterwards the transcript is mined for profile
# insights (love language, values, goals...) that personalise the app.
#
# HISTORY FORMATTING (Gemini constraints):
#   - system messages are dropped (the stage prompt goes in
#     system_instruction instead)
#   - the first turn must come from the user; a synthetic "Hello" is
#     inserted when the transcript starts with the assistant
#   - assistant turns use role "model"
#
# DEGRADED MODE: when Gemini is not configured or a call fails, onboarding
# continues with scripted replies chosen by how many messages the user has
# sent, and extraction saves three generic insights flagged `is_fallback`.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from bondquest.services.errors import AIUnavailableError, NotFoundError
from bondquest.services.generation import parse_json_payload
from bondquest.services.llm import LLMProvider, get_conversation_provider

if TYPE_CHECKING:
    from bondquest.db.models import ConversationMessage, ProfileInsight
    from bondquest.db.storage import DatabaseStorage

logger = logging.getLogger(__name__)

AI_SENDER = "ai"
USER_SENDER = "user"
SYSTEM_SENDER = "system"

ONBOARDING_CONTEXT_PREFIX = "onboarding_"
ONBOARDING_SESSION_TYPE = "onboarding"
MIN_USER_MESSAGES_FOR_INSIGHTS = 2

GENERIC_FALLBACK_REPLY = (
    "I'm here to help you build a stronger relationship. "
    "What would you like to know about BondQuest?"
)

_ONBOARDING_FALLBACK_REPLIES = (
    "Hello and welcome to BondQuest! 👋 I'm your relationship assistant, here to "
    "help you strengthen your bond with your partner. What's your name, and what's "
    "your partner's name? I'd love to get to know you both better!",
    "It's great to meet you! How long have you and your partner been together? "
    "Understanding your relationship journey helps me provide more personalized "
    "suggestions and activities.",
    "Thanks for sharing! What are you hoping to gain from using BondQuest? Whether "
    "it's better communication, fun activities to do together, or deeper "
    "understanding of each other - knowing your goals will help me customize your "
    "experience.",
    "That's wonderful! BondQuest has lots of features to help with that. You'll "
    "find relationship quizzes, suggested activities, and tools to track your bond "
    "strength as you grow together. I'm excited to be part of your relationship "
    "journey! Is there anything specific you'd like to explore first?",
)

_ONBOARDING_CLOSING_REPLY = (
    "I understand! BondQuest is all about helping couples like you strengthen "
    "their connection through fun, meaningful interactions. Let's continue this "
    "journey together. What would you like to explore next?"
)

_ONBOARDING_PROMPTS = {
    "welcome": """You are BondQuest's friendly relationship assistant. Your goal is to make the user feel comfortable sharing information about their relationship in a natural, conversational way. You're warmly welcoming them to the relationship app.

In this initial conversation:
1. Introduce yourself and welcome them to BondQuest
2. Ask about their name and their partner's name (if they have one)
3. Inquire about how long they've been together
4. Ask what they hope to gain from using this relationship app

Keep your messages friendly, supportive and relatively short. Show genuine interest in their relationship and make them feel comfortable sharing.""",
    "relationship_status": """You are BondQuest's friendly relationship assistant. Your goal is to gently learn more about the user's current relationship status and dynamics in a conversational way.

In this conversation:
1. Ask about their current relationship status (dating, engaged, married, etc.)
2. Inquire about how they met their partner
3. Ask what they love most about their relationship
4. Discuss any relationship challenges they're currently facing

Keep your messages supportive and non-judgmental. Show empathy and understanding, especially when they share challenges. Validate their feelings and experiences.""",
    "communication": """You are BondQuest's friendly relationship assistant. Your goal is to understand how the user and their partner communicate and handle conflicts.

In this conversation:
1. Ask how they typically communicate with their partner (text, calls, in-person, etc.)
2. Inquire about how they handle disagreements or conflicts
3. Ask if they feel heard and understood by their partner
4. Discuss any communication challenges they face

Be supportive and provide gentle reflection on their communication patterns. Avoid being prescriptive or judgmental. Acknowledge that every relationship has unique communication dynamics.""",
    "interests": """You are BondQuest's friendly relationship assistant. Your goal is to learn about the couple's shared interests and activities they enjoy together.

In this conversation:
1. Ask about activities they enjoy doing together
2. Inquire about their individual interests and hobbies
3. Discuss how they balance shared and individual interests
4. Ask about new things they'd like to try together

Be enthusiastic about their shared interests and supportive of their individual pursuits. Highlight how both shared and individual activities can strengthen a relationship.""",
    "goals": """You are BondQuest's friendly relationship assistant. Your goal is to understand the couple's relationship goals and aspirations.

In this conversation:
1. Ask about their short-term relationship goals
2. Inquire about their long-term vision for the relationship
3. Discuss how they support each other's personal goals
4. Ask what growth they'd like to see in their relationship

Be encouraging and positive about their goals. Acknowledge the importance of supporting each other's individual dreams while building a shared future.""",
    "wrap_up": """You are BondQuest's friendly relationship assistant. Your goal is to wrap up the onboarding conversation positively and set expectations for using the app.

In this conversation:
1. Thank them for sharing about their relationship
2. Summarize a few key insights you've gathered
3. Express excitement about helping them strengthen their bond
4. Explain that BondQuest will use this information to personalize their experience

Be warm and appreciative. Make them feel good about the information they've shared and excited about using BondQuest to enhance their relationship.""",
}

ONBOARDING_STAGES = tuple(_ONBOARDING_PROMPTS)

_EXTRACTION_PROMPT = """Please analyze the following conversation and extract key relationship insights about the user.
Focus on extracting the following types of information:

1. Relationship preferences (love languages, communication styles)
2. Partner dynamics (how they interact, conflict resolution patterns)
3. Personal values (what matters to them in relationships)
4. Relationship goals (what they want to achieve together)
5. Shared interests (activities they enjoy together)

Return your insights as a JSON array with objects containing:
- insightType: one of the categories above
- insight: a detailed description of the insight
- confidenceScore: how confident you are in this insight (low, medium, high)

Only extract insights that are clearly supported by the conversation."""

_FALLBACK_INSIGHTS = (
    (
        "Relationship preferences",
        "The user values clear and open communication in their relationship.",
    ),
    (
        "Relationship goals",
        "The user is interested in deepening their connection with their partner "
        "through shared activities and experiences.",
    ),
    (
        "Personal values",
        "Trust and mutual respect appear to be fundamental values in the user's "
        "approach to relationships.",
    ),
)

_CONFIDENCE_LEVELS = {"low": 0.3, "medium": 0.6, "high": 0.9}


# ---------------------------------------------------------------------------
# Prompts & formatting
# ---------------------------------------------------------------------------


def get_onboarding_prompt(stage: str) -> str:
    """Stage prompt; unknown stages get the welcome prompt."""
    return _ONBOARDING_PROMPTS.get(stage, _ONBOARDING_PROMPTS["welcome"])


def resolve_system_context(system_context: str | None) -> str | None:
    """Expand `onboarding_<stage>` shorthands; other text passes through."""
    if system_context and system_context.startswith(ONBOARDING_CONTEXT_PREFIX):
        return get_onboarding_prompt(system_context[len(ONBOARDING_CONTEXT_PREFIX):])
    return system_context


def format_history(messages: Sequence[Any]) -> list[dict[str, str]]:
    """
    Turn stored messages into provider chat turns.

    Drops system messages, guarantees a leading user turn and maps every
    non-user sender to "assistant".
    """
    turns = [
        {
            "role": "user" if m.sender == USER_SENDER else "assistant",
            "content": m.message,
        }
        for m in messages
        if m.sender != SYSTEM_SENDER
    ]
    if not turns or turns[0]["role"] != "user":
        turns.insert(0, {"role": "user", "content": "Hello"})
    return turns


def fallback_reply(session_type: str | None, user_message_count: int) -> str:
    """Scripted onboarding reply for the Nth user message."""
    if session_type != ONBOARDING_SESSION_TYPE:
        return GENERIC_FALLBACK_REPLY
    index = max(user_message_count, 1) - 1
    if index < len(_ONBOARDING_FALLBACK_REPLIES):
        return _ONBOARDING_FALLBACK_REPLIES[index]
    return _ONBOARDING_CLOSING_REPLY


def confidence_value(raw: Any) -> float:
    """Map 'low'/'medium'/'high' or a number onto 0..1 (default 0.6)."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
        if value > 1:
            value = value / 100
        return min(max(value, 0.0), 1.0)
    return _CONFIDENCE_LEVELS.get(str(raw).strip().lower(), _CONFIDENCE_LEVELS["medium"])


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def send_message(
    storage: DatabaseStorage,
    session_id: int,
    message: str,
    system_context: str | None = None,
    llm_factory=None,
) -> tuple[ConversationMessage, ConversationMessage]:
    """
    Store the user's message, generate and store the assistant reply.

    Args:
        llm_factory: zero-arg callable returning a provider; raising
            AIUnavailableError switches to scripted replies.

    Raises:
        NotFoundError: unknown session.
    """
    session = await storage.get_conversation_session(session_id)
    if session is None:
        raise NotFoundError("Conversation session not found")

    history = await storage.list_conversation_messages(session_id)
    user_message = await storage.create_conversation_message(
        session_id=session_id,
        sender=USER_SENDER,
        message=message,
        message_type="text",
    )

    system = resolve_system_context(system_context)
    if system is None and session.session_type == ONBOARDING_SESSION_TYPE:
        system = get_onboarding_prompt("welcome")

    reply = await _generate_reply(session, history, message, system, llm_factory)

    ai_message = await storage.create_conversation_message(
        session_id=session_id,
        sender=AI_SENDER,
        message=reply,
        message_type="response",
    )
    return user_message, ai_message


async def _generate_reply(
    session: Any,
    history: Sequence[Any],
    message: str,
    system: str | None,
    llm_factory,
) -> str:
    user_count = sum(1 for m in history if m.sender == USER_SENDER) + 1
    try:
        llm: LLMProvider = (llm_factory or get_conversation_provider)()
        turns = format_history(history)
        turns.append({"role": "user", "content": message})
        response = await llm.complete(messages=turns, system=system, max_tokens=500)
        if response.content.strip():
            return response.content.strip()
        logger.warning("Empty Gemini reply for session %d", session.id)
    except AIUnavailableError:
        logger.info("Gemini not configured; using scripted reply for session %d", session.id)
    except Exception as e:
        logger.warning("Gemini reply failed for session %d: %s", session.id, e)

    return fallback_reply(session.session_type, user_count)


async def extract_profile_insights(
    storage: DatabaseStorage,
    session_id: int,
    user_id: int,
    llm_factory=None,
) -> list[ProfileInsight]:
    """
    Distil profile insights from a conversation and save them.

    Falls back to generic insights (only when the user sent at least two
    messages) if Gemini is unavailable or returns something other than a
    JSON array.
    """
    session = await storage.get_conversation_session(session_id)
    if session is None:
        raise NotFoundError("Conversation session not found")

    messages = await storage.list_conversation_messages(session_id)
    if not messages:
        return []

    transcript = "\n\n".join(f"{m.sender}: {m.message}" for m in messages)

    try:
        llm: LLMProvider = (llm_factory or get_conversation_provider)()
        response = await llm.complete(
            messages=[{"role": "user", "content": f"{_EXTRACTION_PROMPT}\n\n{transcript}"}],
            temperature=0.2,
            max_tokens=1500,
        )
        parsed = parse_json_payload(response.content)
    except AIUnavailableError:
        logger.info("Gemini not configured; using fallback insights for session %d", session_id)
        parsed = None
    except Exception as e:
        logger.warning("Insight extraction failed for session %d: %s", session_id, e)
        parsed = None

    if not isinstance(parsed, list):
        return await _save_fallback_insights(storage, messages, session_id, user_id)

    saved = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        insight_type = item.get("insightType") or item.get("insight_type")
        text = item.get("insight")
        if not insight_type or not text:
            continue
        saved.append(await storage.create_profile_insight(
            user_id=user_id,
            insight_type=str(insight_type),
            insight=str(text),
            confidence_score=confidence_value(
                item.get("confidenceScore", item.get("confidence_score", "medium"))
            ),
            source="conversation",
            metadata_={"session_id": session_id},
        ))

    logger.info("Extracted %d profile insights from session %d", len(saved), session_id)
    return saved


async def _save_fallback_insights(
    storage: DatabaseStorage,
    messages: Sequence[Any],
    session_id: int,
    user_id: int,
) -> list[ProfileInsight]:
    user_messages = [m for m in messages if m.sender == USER_SENDER]
    if len(user_messages) < MIN_USER_MESSAGES_FOR_INSIGHTS:
        return []

    return [
        await storage.create_profile_insight(
            user_id=user_id,
            insight_type=insight_type,
            insight=text,
            confidence_score=_CONFIDENCE_LEVELS["medium"],
            source="conversation",
            metadata_={"session_id": session_id, "is_fallback": True},
        )
        for insight_type, text in _FALLBACK_INSIGHTS
    ]
