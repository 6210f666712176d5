# =============================================================================
# Chats API — Persona Chat (Casanova, Venus, Aurora)
# =============================================================================
#
# POST /chats stores the message and, for user messages, the persona's
# reply. The reply never fails the request: generate_ai_response returns a
# canned apology when OpenAI is missing or errors.
#
# Only user messages count against the AI rate limit.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from bondquest.api.deps import get_current_user, get_storage, http_error, load_couple_for_user
from bondquest.db.models import User
from bondquest.db.storage import DatabaseStorage
from bondquest.models.requests import ChatCreateRequest
from bondquest.models.responses import ChatExchangeResponse, ChatResponse
from bondquest.services.errors import RateLimitedError
from bondquest.services.generation import generate_ai_response
from bondquest.services.rate_limiter import check_ai_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post(
    "/chats",
    response_model=ChatExchangeResponse,
    status_code=201,
    summary="Send a chat message to an AI persona",
)
async def create_chat(
    request: ChatCreateRequest,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> ChatExchangeResponse:
    await load_couple_for_user(storage, request.couple_id, user)
    if request.sender == "user":
        try:
            await check_ai_rate_limit(user)
        except RateLimitedError as e:
            raise http_error(e) from e

    message = await storage.create_chat(
        couple_id=request.couple_id,
        assistant_type=request.assistant_type,
        message=request.message,
        sender=request.sender,
    )

    reply = None
    if request.sender == "user":
        text = await generate_ai_response(request.message, request.assistant_type)
        reply = await storage.create_chat(
            couple_id=request.couple_id,
            assistant_type=request.assistant_type,
            message=text,
            sender="assistant",
        )

    return ChatExchangeResponse(
        message=ChatResponse.model_validate(message),
        reply=ChatResponse.model_validate(reply) if reply else None,
    )


@router.get(
    "/couples/{couple_id}/chats",
    response_model=list[ChatResponse],
    summary="Chat history, oldest first",
)
async def list_chats(
    couple_id: int,
    user: User = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
) -> list[ChatResponse]:
    await load_couple_for_user(storage, couple_id, user)
    return [ChatResponse.model_validate(c) for c in await storage.list_chats(couple_id)]
