"""
Leaderboard views over aggregate profiles.
"""

from typing import List, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from tunislock.database.models import User, UserProfile
from tunislock.services.errors import ValidationError
from tunislock.services.profile_service import STAT_FIELDS
from tunislock.services.user_service import UNKNOWN_USER_NAME
from tunislock.utils.constants import (
    DEFAULT_LEADERBOARD_LIMIT,
    MAX_LEADERBOARD_LIMIT,
    MIN_RATINGS_FOR_LEADERBOARD,
)


async def get_overall_worldwide_leaderboard(
    session: AsyncSession,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
    position: Optional[str] = None,
    country: Optional[str] = None,
) -> List[Dict]:
    """
    Ranked list of players by overall score.

    Only profiles with an overall score and at least MIN_RATINGS_FOR_LEADERBOARD
    ratings are eligible. Ties break on ratings count (desc) then display
    name (asc).

    Args:
        session: Database session
        limit: Maximum rows (1-200)
        position: Optional favorite position filter
        country: Optional country filter

    Returns:
        List of rows with a 1-based rank
    """
    if limit < 1 or limit > MAX_LEADERBOARD_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {MAX_LEADERBOARD_LIMIT}")

    query = (
        select(UserProfile, User.name)
        .join(User, User.id == UserProfile.user_id)
        .where(
            UserProfile.overall_score.isnot(None),
            UserProfile.ratings_count >= MIN_RATINGS_FOR_LEADERBOARD,
        )
    )
    if position:
        query = query.where(UserProfile.favorite_position == position)
    if country:
        query = query.where(UserProfile.country == country)

    query = query.order_by(
        UserProfile.overall_score.desc(),
        UserProfile.ratings_count.desc(),
        func.coalesce(UserProfile.display_name, "").asc(),
        UserProfile.user_id.asc(),
    ).limit(limit)

    result = await session.execute(query)
    rows = []
    for rank, (profile, user_name) in enumerate(result.all(), start=1):
        row = {
            "rank": rank,
            "user_id": profile.user_id,
            "display_name": profile.display_name or user_name or UNKNOWN_USER_NAME,
            "favorite_position": profile.favorite_position,
            "country": profile.country,
            "overall_score": profile.overall_score,
            "ratings_count": profile.ratings_count,
        }
        for stat in STAT_FIELDS:
            row[stat] = getattr(profile, stat)
        rows.append(row)
    return rows
