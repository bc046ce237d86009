"""Match registry and roster route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tunislock.api.auth_dependencies import require_user
from tunislock.api.routes import (
    CONCURRENT_UPDATE_RESPONSE,
    database_error_response,
    limiter,
    to_http_exception,
)
from tunislock.database.db import get_db_session
from tunislock.models.schemas import (
    JoinMatchRequest,
    JoinMatchResponse,
    LeaveMatchResponse,
    MatchCreate,
    MatchResponse,
    SlotAvailabilityResponse,
    VenueUpdate,
)
from tunislock.services import match_service, roster_service
from tunislock.services.errors import TunisLockError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matches", response_model=MatchResponse)
@limiter.limit("20/minute")
async def create_match(
    request: Request,
    payload: MatchCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a match owned by the caller."""
    try:
        match = await match_service.create_match(
            session,
            creator_id=user["id"],
            location=payload.location,
            date_time=payload.date_time,
            players_needed=payload.players_needed,
            location_available=payload.location_available,
            description=payload.description,
            party_name=payload.party_name,
            venue_name=payload.venue_name,
            address=payload.address,
            pitch_type=payload.pitch_type,
            amenities=payload.amenities,
            skill_level=payload.skill_level,
        )
        await session.commit()
        return match
    except TunisLockError as e:
        raise to_http_exception(e)
    except IntegrityError:
        await session.rollback()
        raise HTTPException(
            status_code=409,
            detail="A party with this name already exists. Please choose a different name.",
        )
    except Exception as e:
        logger.error(f"Error creating match: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating match: {str(e)}")


# Static paths must come before /api/matches/{match_id}


@router.get("/api/matches/open", response_model=List[MatchResponse])
async def list_open_matches(session: AsyncSession = Depends(get_db_session)):
    """Open matches, soonest first."""
    try:
        return await match_service.list_open_matches(session)
    except Exception as e:
        logger.error(f"Error listing open matches: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error listing open matches: {str(e)}")


@router.get("/api/matches/search", response_model=List[MatchResponse])
async def search_parties(q: str = "", session: AsyncSession = Depends(get_db_session)):
    """Substring search on party name and location."""
    try:
        return await match_service.search_parties(session, q)
    except Exception as e:
        logger.error(f"Error searching parties: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error searching parties: {str(e)}")


@router.get("/api/matches/mine/created", response_model=List[MatchResponse])
async def get_my_created_matches(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Matches the caller created."""
    try:
        return await match_service.get_my_created_matches(session, user["id"])
    except Exception as e:
        logger.error(f"Error fetching created matches: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching created matches: {str(e)}")


@router.get("/api/matches/mine/joined", response_model=List[MatchResponse])
async def get_my_joined_matches(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Matches the caller plays in."""
    try:
        return await match_service.get_my_joined_matches(session, user["id"])
    except Exception as e:
        logger.error(f"Error fetching joined matches: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching joined matches: {str(e)}")


@router.get("/api/matches/{match_id}", response_model=MatchResponse)
async def get_match_details(match_id: int, session: AsyncSession = Depends(get_db_session)):
    """Match with participants and resolved names."""
    try:
        match = await match_service.get_match_details(session, match_id)
    except Exception as e:
        logger.error(f"Error fetching match {match_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching match: {str(e)}")
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


@router.get("/api/matches/{match_id}/slots", response_model=SlotAvailabilityResponse)
async def get_slot_availability(match_id: int, session: AsyncSession = Depends(get_db_session)):
    """Remaining capacity per team and position."""
    try:
        return await roster_service.get_slot_availability(session, match_id)
    except TunisLockError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching slots for match {match_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching slots: {str(e)}")


async def _join(session: AsyncSession, match_id: int, user: dict, payload: JoinMatchRequest, creator: bool):
    join = roster_service.creator_join_match if creator else roster_service.join_match
    try:
        result = await join(session, match_id, user["id"], payload.team, payload.position)
        await session.commit()
        return result
    except TunisLockError as e:
        raise to_http_exception(e)
    except IntegrityError:
        # Lost a race for the same slot or membership
        await session.rollback()
        raise CONCURRENT_UPDATE_RESPONSE
    except DBAPIError as e:
        raise await database_error_response(session, e, "joining match")
    except Exception as e:
        logger.error(f"Error joining match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error joining match: {str(e)}")


@router.post("/api/matches/{match_id}/join", response_model=JoinMatchResponse)
async def join_match(
    match_id: int,
    payload: JoinMatchRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join an open match on a team and position."""
    return await _join(session, match_id, user, payload, creator=False)


@router.post("/api/matches/{match_id}/creator-join", response_model=JoinMatchResponse)
async def creator_join_match(
    match_id: int,
    payload: JoinMatchRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Creator takes a slot in their own match."""
    return await _join(session, match_id, user, payload, creator=True)


@router.post("/api/matches/{match_id}/leave", response_model=LeaveMatchResponse)
async def leave_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a match; a full match reopens."""
    try:
        result = await roster_service.leave_match(session, match_id, user["id"])
        await session.commit()
        return result
    except TunisLockError as e:
        raise to_http_exception(e)
    except DBAPIError as e:
        raise await database_error_response(session, e, "leaving match")
    except Exception as e:
        logger.error(f"Error leaving match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error leaving match: {str(e)}")


@router.post("/api/matches/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a match (creator only)."""
    try:
        match = await match_service.cancel_match(session, match_id, user["id"])
        await session.commit()
        return match
    except TunisLockError as e:
        raise to_http_exception(e)
    except DBAPIError as e:
        raise await database_error_response(session, e, "cancelling match")
    except Exception as e:
        logger.error(f"Error cancelling match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error cancelling match: {str(e)}")


@router.post("/api/matches/{match_id}/complete", response_model=MatchResponse)
async def complete_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a match completed (creator only)."""
    try:
        match = await match_service.complete_match(session, match_id, user["id"])
        await session.commit()
        return match
    except TunisLockError as e:
        raise to_http_exception(e)
    except DBAPIError as e:
        raise await database_error_response(session, e, "completing match")
    except Exception as e:
        logger.error(f"Error completing match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error completing match: {str(e)}")


@router.patch("/api/matches/{match_id}/venue", response_model=MatchResponse)
async def update_venue(
    match_id: int,
    payload: VenueUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update venue details (creator only)."""
    try:
        match = await match_service.update_venue(
            session,
            match_id,
            user["id"],
            venue_name=payload.venue_name,
            address=payload.address,
            pitch_type=payload.pitch_type,
            amenities=payload.amenities,
        )
        await session.commit()
        return match
    except TunisLockError as e:
        raise to_http_exception(e)
    except DBAPIError as e:
        raise await database_error_response(session, e, "updating venue")
    except Exception as e:
        logger.error(f"Error updating venue for match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating venue: {str(e)}")
