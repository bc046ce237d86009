"""Profile and leaderboard route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tunislock.api.auth_dependencies import require_user
from tunislock.api.routes import to_http_exception
from tunislock.database.db import get_db_session
from tunislock.models.schemas import (
    LeaderboardEntry,
    PositionLiteral,
    ProfileResponse,
    ProfileUpdate,
)
from tunislock.services import leaderboard_service, profile_service
from tunislock.services.errors import TunisLockError
from tunislock.utils.constants import DEFAULT_LEADERBOARD_LIMIT

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/profiles/me", response_model=ProfileResponse)
async def get_my_profile(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Caller's own profile."""
    try:
        return await profile_service.get_user_profile(session, user["id"])
    except Exception as e:
        logger.error(f"Error fetching profile: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching profile: {str(e)}")


@router.put("/api/profiles/me", response_model=ProfileResponse)
async def update_my_profile(
    payload: ProfileUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the caller's editable profile fields."""
    try:
        profile = await profile_service.update_user_profile(
            session,
            user["id"],
            display_name=payload.display_name,
            bio=payload.bio,
            favorite_position=payload.favorite_position,
            location=payload.location,
            age=payload.age,
            skill_level=payload.skill_level,
            country=payload.country,
        )
        await session.commit()
        return profile
    except TunisLockError as e:
        raise to_http_exception(e)
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=409, detail="Display name is already taken")
    except Exception as e:
        logger.error(f"Error updating profile: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating profile: {str(e)}")


@router.get("/api/profiles/{user_id}", response_model=ProfileResponse)
async def get_profile(user_id: int, session: AsyncSession = Depends(get_db_session)):
    """Public profile of any user."""
    try:
        profile = await profile_service.get_user_profile(session, user_id)
    except Exception as e:
        logger.error(f"Error fetching profile {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching profile: {str(e)}")
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@router.get("/api/leaderboards/overall", response_model=List[LeaderboardEntry])
async def get_overall_leaderboard(
    limit: int = Query(DEFAULT_LEADERBOARD_LIMIT),
    position: Optional[PositionLiteral] = None,
    country: Optional[str] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Worldwide leaderboard by overall score."""
    try:
        return await leaderboard_service.get_overall_worldwide_leaderboard(
            session, limit=limit, position=position, country=country
        )
    except TunisLockError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching leaderboard: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching leaderboard: {str(e)}")
