"""Party chat route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tunislock.api.auth_dependencies import require_user
from tunislock.api.routes import limiter, to_http_exception
from tunislock.database.db import get_db_session
from tunislock.models.schemas import ChatMessageCreate, ChatMessageResponse
from tunislock.services import chat_service
from tunislock.services.errors import TunisLockError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/matches/{match_id}/messages", response_model=List[ChatMessageResponse])
async def list_messages(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Party chat of a match, oldest first."""
    try:
        return await chat_service.list_messages(session, match_id)
    except Exception as e:
        logger.error(f"Error listing messages for match {match_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error listing messages: {str(e)}")


@router.post("/api/matches/{match_id}/messages", response_model=ChatMessageResponse)
@limiter.limit("30/minute")
async def send_message(
    request: Request,
    match_id: int,
    payload: ChatMessageCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Post to the party chat (creator and participants only)."""
    try:
        message = await chat_service.send_message(session, user["id"], match_id, payload.message_text)
        await session.commit()
        return message
    except TunisLockError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error sending message to match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending message: {str(e)}")
