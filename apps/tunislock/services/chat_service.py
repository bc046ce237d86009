"""
Party chat: a per-match message log for the creator and participants.
"""

from typing import List, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from tunislock.database.models import ChatMessage, TERMINAL_MATCH_STATUSES
from tunislock.services import match_service, roster_service, user_service
from tunislock.services.errors import AuthorizationError, InvalidStateError, ValidationError
from tunislock.utils.constants import MAX_CHAT_MESSAGE_LENGTH
from tunislock.utils.datetime_utils import isoformat_or_none


def format_author_name(display_name: str, user_id: int) -> str:
    """Display name suffixed with the last four digits of the user id, e.g. "Sami#0042"."""
    return f"{display_name}#{str(user_id).zfill(4)[-4:]}"


async def send_message(session: AsyncSession, user_id: int, match_id: int, message_text: str) -> Dict:
    """
    Post a message to a match's party chat.

    Raises:
        ValidationError: Empty or too long message
        NotFoundError: Match does not exist
        AuthorizationError: Caller is neither creator nor participant
        InvalidStateError: Match is cancelled or completed
    """
    text = (message_text or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > MAX_CHAT_MESSAGE_LENGTH:
        raise ValidationError(f"Message is too long (max {MAX_CHAT_MESSAGE_LENGTH} characters)")

    match = await match_service.get_match_or_raise(session, match_id)
    if match.creator_id != user_id:
        participants = await match_service.get_participants(session, match_id)
        if not roster_service.find_participant(participants, user_id):
            raise AuthorizationError("You are not part of this match's party chat")

    if match.status in TERMINAL_MATCH_STATUSES:
        raise InvalidStateError(f"Chat is closed for {match.status} matches")

    message = ChatMessage(match_id=match_id, user_id=user_id, message_text=text)
    session.add(message)
    await session.flush()
    await session.refresh(message)

    name = await user_service.get_display_name(session, user_id)
    return {
        "id": message.id,
        "match_id": match_id,
        "user_id": user_id,
        "message_text": message.message_text,
        "author_name": format_author_name(name, user_id),
        "created_at": isoformat_or_none(message.created_at),
    }


async def list_messages(session: AsyncSession, match_id: int) -> List[Dict]:
    """Messages of a match, oldest first, with author_name."""
    result = await session.execute(
        select(ChatMessage)
        .where(ChatMessage.match_id == match_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
    )
    messages = result.scalars().all()
    names = await user_service.get_display_names(session, [m.user_id for m in messages])
    return [
        {
            "id": m.id,
            "match_id": m.match_id,
            "user_id": m.user_id,
            "message_text": m.message_text,
            "author_name": format_author_name(names[m.user_id], m.user_id),
            "created_at": isoformat_or_none(m.created_at),
        }
        for m in messages
    ]
