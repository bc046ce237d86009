"""Party invitation route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tunislock.api.auth_dependencies import require_user
from tunislock.api.routes import CONCURRENT_UPDATE_RESPONSE, database_error_response, to_http_exception
from tunislock.database.db import get_db_session
from tunislock.models.schemas import (
    AcceptInvitationResponse,
    InvitationAccept,
    InvitationCreate,
    InvitationResponse,
)
from tunislock.services import invitation_service
from tunislock.services.errors import TunisLockError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/invitations", response_model=InvitationResponse)
async def send_invitation(
    payload: InvitationCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invite a user into a match's party."""
    try:
        invitation = await invitation_service.send_party_invitation(
            session, user["id"], payload.match_id, payload.invitee_id, payload.message
        )
        await session.commit()
        return invitation
    except TunisLockError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error sending invitation: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending invitation: {str(e)}")


@router.post("/api/invitations/{invitation_id}/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    invitation_id: int,
    payload: InvitationAccept,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept an invitation and join on the chosen team and position."""
    try:
        result = await invitation_service.accept_party_invitation(
            session, user["id"], invitation_id, payload.team, payload.position
        )
        await session.commit()
        return result
    except TunisLockError as e:
        raise to_http_exception(e)
    except IntegrityError:
        await session.rollback()
        raise CONCURRENT_UPDATE_RESPONSE
    except DBAPIError as e:
        raise await database_error_response(session, e, "accepting invitation")
    except Exception as e:
        logger.error(f"Error accepting invitation {invitation_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error accepting invitation: {str(e)}")


@router.post("/api/invitations/{invitation_id}/decline", response_model=InvitationResponse)
async def decline_invitation(
    invitation_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline an invitation."""
    try:
        invitation = await invitation_service.decline_party_invitation(
            session, user["id"], invitation_id
        )
        await session.commit()
        return invitation
    except TunisLockError as e:
        raise to_http_exception(e)
    except DBAPIError as e:
        raise await database_error_response(session, e, "declining invitation")
    except Exception as e:
        logger.error(f"Error declining invitation {invitation_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error declining invitation: {str(e)}")


@router.get("/api/invitations/pending", response_model=List[InvitationResponse])
async def get_pending_invitations(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Pending invitations addressed to the caller."""
    try:
        return await invitation_service.get_my_pending_invitations(session, user["id"])
    except Exception as e:
        logger.error(f"Error fetching pending invitations: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching pending invitations: {str(e)}")


@router.get("/api/invitations/sent", response_model=List[InvitationResponse])
async def get_sent_invitations(
    match_id: Optional[int] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invitations the caller sent, optionally for one match."""
    try:
        return await invitation_service.get_my_sent_invitations(session, user["id"], match_id)
    except Exception as e:
        logger.error(f"Error fetching sent invitations: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching sent invitations: {str(e)}")
