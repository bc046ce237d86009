"""
User profiles and the aggregate skill computation.

The six stats, overall_score and ratings_count are derived from the full set
of PlayerRating rows a user has received; nothing else writes them.
"""

import math
from typing import Dict, Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from tunislock.database.models import PlayerRating, PlayerSkillLevel, Position, User, UserProfile
from tunislock.services.errors import ConflictError, NotFoundError, ValidationError
from tunislock.utils.constants import (
    DISPLAY_NAME_MAX_LENGTH,
    DISPLAY_NAME_MIN_LENGTH,
    GRADE_VALUES,
    MAX_AGE,
    MIN_AGE,
    RATING_ATTRIBUTES,
)
from tunislock.utils.datetime_utils import isoformat_or_none
import logging

logger = logging.getLogger(__name__)

STAT_FIELDS = list(RATING_ATTRIBUTES.values())
_POSITIONS = {p.value for p in Position}
_SKILL_LEVELS = {s.value for s in PlayerSkillLevel}


# ============================================================================
# Aggregation
# ============================================================================

def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


def compute_aggregate(ratings: Iterable) -> Dict:
    """
    Compute aggregate stats from received ratings.

    Each attribute is the rounded mean of the numeric value of every grade
    received for it (S=95, A=85, B=75, C=65, D=55), or None when no grade was
    ever given. overall_score is the rounded mean of the attributes that are
    set, or None. ratings_count counts every rating, graded or not.

    Args:
        ratings: Objects exposing the *_given grade attributes

    Returns:
        Dict with the six stats, overall_score and ratings_count
    """
    ratings = list(ratings)
    aggregate: Dict[str, Optional[int]] = {}

    for given_field, stat in RATING_ATTRIBUTES.items():
        values = []
        for rating in ratings:
            grade = getattr(rating, given_field, None)
            if grade in GRADE_VALUES:
                values.append(GRADE_VALUES[grade])
        aggregate[stat] = round_half_up(sum(values) / len(values)) if values else None

    set_stats = [aggregate[stat] for stat in STAT_FIELDS if aggregate[stat] is not None]
    aggregate["overall_score"] = (
        round_half_up(sum(set_stats) / len(set_stats)) if set_stats else None
    )
    aggregate["ratings_count"] = len(ratings)
    return aggregate


async def _get_profile_row(session: AsyncSession, user_id: int) -> Optional[UserProfile]:
    result = await session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def recompute_profile(session: AsyncSession, user_id: int) -> Dict:
    """
    Recompute and store a user's aggregate profile from all received ratings.

    Idempotent: always derived from the full rating set. Creates the profile
    row when the user has none yet.

    Args:
        session: Database session
        user_id: Rated user

    Returns:
        The stored aggregate
    """
    result = await session.execute(
        select(PlayerRating).where(PlayerRating.rated_user_id == user_id)
    )
    aggregate = compute_aggregate(result.scalars().all())

    profile = await _get_profile_row(session, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id)
        session.add(profile)

    for field, value in aggregate.items():
        setattr(profile, field, value)
    await session.flush()

    logger.info(
        f"Recomputed profile for user {user_id}: overall={aggregate['overall_score']} "
        f"from {aggregate['ratings_count']} ratings"
    )
    return aggregate


# ============================================================================
# Profile read / update
# ============================================================================

def _profile_to_dict(user: User, profile: Optional[UserProfile]) -> Dict:
    data = {
        "user_id": user.id,
        "name": user.name,
        "display_name": None,
        "bio": None,
        "favorite_position": None,
        "location": None,
        "age": None,
        "skill_level": None,
        "country": None,
        "overall_score": None,
        "ratings_count": 0,
        "updated_at": None,
    }
    for stat in STAT_FIELDS:
        data[stat] = None
    if profile is None:
        return data

    data.update(
        display_name=profile.display_name,
        bio=profile.bio,
        favorite_position=profile.favorite_position,
        location=profile.location,
        age=profile.age,
        skill_level=profile.skill_level,
        country=profile.country,
        overall_score=profile.overall_score,
        ratings_count=profile.ratings_count or 0,
        updated_at=isoformat_or_none(profile.updated_at),
    )
    for stat in STAT_FIELDS:
        data[stat] = getattr(profile, stat)
    return data


async def get_user_profile(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Public profile of a user.

    Returns:
        Profile dict (stats None when unset, ratings_count 0 by default),
        or None if the user does not exist
    """
    result = await session.execute(
        select(User, UserProfile)
        .outerjoin(UserProfile, UserProfile.user_id == User.id)
        .where(User.id == user_id)
    )
    row = result.first()
    if row is None:
        return None
    return _profile_to_dict(row[0], row[1])


async def display_name_taken(
    session: AsyncSession, display_name: str, exclude_user_id: Optional[int] = None
) -> bool:
    """Case-insensitive display name lookup."""
    query = select(UserProfile.id).where(
        func.lower(UserProfile.display_name) == display_name.lower()
    )
    if exclude_user_id is not None:
        query = query.where(UserProfile.user_id != exclude_user_id)
    result = await session.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def update_user_profile(
    session: AsyncSession,
    user_id: int,
    display_name: Optional[str] = None,
    bio: Optional[str] = None,
    favorite_position: Optional[str] = None,
    location: Optional[str] = None,
    age: Optional[int] = None,
    skill_level: Optional[str] = None,
    country: Optional[str] = None,
) -> Dict:
    """
    Update the caller's editable profile fields. None leaves a field unchanged.

    Aggregate stats are not editable here.

    Raises:
        NotFoundError: User does not exist
        ValidationError: Bad display name length, age, position or skill level
        ConflictError: Display name already taken (case-insensitive)
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")

    if display_name is not None:
        display_name = display_name.strip()
        if not DISPLAY_NAME_MIN_LENGTH <= len(display_name) <= DISPLAY_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Display name must be between {DISPLAY_NAME_MIN_LENGTH} and "
                f"{DISPLAY_NAME_MAX_LENGTH} characters"
            )
        if await display_name_taken(session, display_name, exclude_user_id=user_id):
            raise ConflictError("Display name is already taken")

    if age is not None and not MIN_AGE <= age <= MAX_AGE:
        raise ValidationError(f"Age must be between {MIN_AGE} and {MAX_AGE}")
    if favorite_position is not None and favorite_position not in _POSITIONS:
        raise ValidationError(f"Invalid position: {favorite_position}")
    if skill_level is not None and skill_level not in _SKILL_LEVELS:
        raise ValidationError(f"Invalid skill level: {skill_level}")

    profile = await _get_profile_row(session, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id, ratings_count=0)
        session.add(profile)

    updates = {
        "display_name": display_name,
        "bio": bio,
        "favorite_position": favorite_position,
        "location": location,
        "age": age,
        "skill_level": skill_level,
        "country": country,
    }
    for field, value in updates.items():
        if value is not None:
            setattr(profile, field, value)

    await session.flush()
    await session.refresh(profile)
    return _profile_to_dict(user, profile)
