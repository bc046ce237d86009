"""Rating route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tunislock.api.auth_dependencies import require_user
from tunislock.api.routes import database_error_response, limiter, to_http_exception
from tunislock.database.db import get_db_session
from tunislock.models.schemas import PlayerToRateResponse, RatingCreate, SubmitRatingResponse
from tunislock.services import rating_service
from tunislock.services.aggregation_queue import get_aggregation_queue
from tunislock.services.errors import TunisLockError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matches/{match_id}/ratings", response_model=SubmitRatingResponse)
@limiter.limit("60/minute")
async def submit_rating(
    request: Request,
    match_id: int,
    payload: RatingCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Rate another participant of a completed match.

    The profile aggregation job is committed with the rating; the worker is
    woken afterwards and recomputes the rated player's profile.
    """
    try:
        result = await rating_service.submit_rating(
            session,
            rater_user_id=user["id"],
            match_id=match_id,
            rated_user_id=payload.rated_user_id,
            suggestion=payload.suggestion,
            grades=payload.grades(),
        )
        await session.commit()
    except TunisLockError as e:
        raise to_http_exception(e)
    except IntegrityError:
        await session.rollback()
        raise HTTPException(
            status_code=409, detail="You have already rated this player for this match"
        )
    except DBAPIError as e:
        raise await database_error_response(session, e, "submitting rating")
    except Exception as e:
        logger.error(f"Error submitting rating for match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error submitting rating: {str(e)}")

    get_aggregation_queue().wake()
    return result


@router.get("/api/matches/{match_id}/players-to-rate", response_model=List[PlayerToRateResponse])
async def get_players_to_rate(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Other participants of a completed match and whether the caller rated them."""
    try:
        return await rating_service.get_players_to_rate(session, user["id"], match_id)
    except TunisLockError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching players to rate for match {match_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching players to rate: {str(e)}")
