# =============================================================================
# Conversations API — Gemini-Backed Onboarding Chat
# =============================================================================
#
# Sessions belong to the user who created them; the user id always comes
# from the bearer token. Sending a message and extracting insights call
# Gemini and are rate limited; both fall back to scripted output when
# Gemini is not configured, so the onboarding flow never dead-ends.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from bondquest.api.deps import (
    ai_rate_limited_user,
    get_current_user,
    get_storage,
    http_error,
    is_admin,
)
from bondquest.db.models import ConversationSession, User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import (
    ConversationMessageRequest,
    ConversationSessionCreateRequest,
)
from bondquest.models.responses import (
    ConversationExchangeResponse,
    ConversationMessageResponse,
    ConversationSessionResponse,
    ProfileInsightResponse,
)
from bondquest.services import conversation
from bondquest.services.errors import ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["Conversations"])


async def _load_session(
    storage: DatabaseStorage, session_id: int, user: User,
) -> ConversationSession:
    session = await storage.get_conversation_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Conversation session not found")
    if session.user_id != user.id and not is_admin(user):
        raise HTTPException(status_code=403, detail="You do not have access to this conversation.")
    return session


@router.post(
    "/sessions",
    response_model=ConversationSessionResponse,
    status_code=201,
    summary="Start a conversation session",
)
async def create_session(
    request: ConversationSessionCreateRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> ConversationSessionResponse:
    session = await storage.create_conversation_session(
        user_id=user.id,
        session_type=request.session_type,
        title=request.title,
        status="active",
        metadata_=request.metadata or {},
    )
    return ConversationSessionResponse.model_validate(session)


@router.get(
    "/sessions",
    response_model=list[ConversationSessionResponse],
    summary="List my conversation sessions",
)
async def list_sessions(
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[ConversationSessionResponse]:
    sessions = await storage.list_conversation_sessions(user.id)
    return [ConversationSessionResponse.model_validate(s) for s in sessions]


@router.get(
    "/sessions/{session_id}/messages",
    response_model=list[ConversationMessageResponse],
    summary="Messages in a session, oldest first",
)
async def list_messages(
    session_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[ConversationMessageResponse]:
    await _load_session(storage, session_id, user)
    messages = await storage.list_conversation_messages(session_id)
    return [ConversationMessageResponse.model_validate(m) for m in messages]


@router.post(
    "/messages",
    response_model=ConversationExchangeResponse,
    status_code=201,
    summary="Send a message and get the assistant's reply",
)
async def send_message(
    request: ConversationMessageRequest,
    user: User = Depends(ai_rate_limited_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> ConversationExchangeResponse:
    await _load_session(storage, request.session_id, user)
    try:
        user_message, ai_message = await conversation.send_message(
            storage,
            request.session_id,
            request.message,
            system_context=request.system_context,
        )
    except ServiceError as e:
        raise http_error(e) from e

    return ConversationExchangeResponse(
        user_message=ConversationMessageResponse.model_validate(user_message),
        ai_message=ConversationMessageResponse.model_validate(ai_message),
    )


@router.post(
    "/sessions/{session_id}/extract-insights",
    response_model=list[ProfileInsightResponse],
    summary="Extract profile insights from a session",
)
async def extract_insights(
    session_id: int,
    user: User = Depends(ai_rate_limited_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[ProfileInsightResponse]:
    session = await _load_session(storage, session_id, user)
    try:
        saved = await conversation.extract_profile_insights(
            storage, session_id, session.user_id,
        )
    except ServiceError as e:
        raise http_error(e) from e
    return [ProfileInsightResponse.model_validate(i) for i in saved]


@router.get(
    "/insights",
    response_model=list[ProfileInsightResponse],
    summary="My profile insights, newest first",
)
async def list_profile_insights(
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[ProfileInsightResponse]:
    return [
        ProfileInsightResponse.model_validate(i)
        for i in await storage.list_profile_insights(user.id)
    ]
