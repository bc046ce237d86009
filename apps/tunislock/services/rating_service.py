"""
Rating submission for completed matches.
"""

from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from tunislock.database.models import Grade, MatchStatus, PlayerRating
from tunislock.services import match_service, user_service
from tunislock.services.aggregation_queue import get_aggregation_queue
from tunislock.services.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tunislock.services.roster_service import find_participant
from tunislock.utils.constants import RATING_ATTRIBUTES
from tunislock.utils.datetime_utils import isoformat_or_none
import logging

logger = logging.getLogger(__name__)

_GRADES = {g.value for g in Grade}


def _rating_to_dict(rating: PlayerRating) -> Dict:
    data = {
        "id": rating.id,
        "match_id": rating.match_id,
        "rater_user_id": rating.rater_user_id,
        "rated_user_id": rating.rated_user_id,
        "suggestion": rating.suggestion,
        "created_at": isoformat_or_none(rating.created_at),
    }
    for given_field in RATING_ATTRIBUTES:
        data[given_field] = getattr(rating, given_field)
    return data


async def submit_rating(
    session: AsyncSession,
    rater_user_id: int,
    match_id: int,
    rated_user_id: int,
    suggestion: Optional[str] = None,
    grades: Optional[Dict[str, Optional[str]]] = None,
) -> Dict:
    """
    Record one player's rating of another for a completed match.

    The aggregation job for the rated user is enqueued in the same
    transaction; callers wake the aggregation worker after committing.

    Args:
        session: Database session
        rater_user_id: Caller
        match_id: Completed match both players took part in
        rated_user_id: Player being rated
        suggestion: Optional free-text feedback
        grades: Mapping of *_given attribute name to grade (S/A/B/C/D) or None

    Returns:
        Dict with rating and aggregation_job_id

    Raises:
        ValidationError: No grade and no suggestion, unknown grade, self-rating,
            or rated user did not play
        NotFoundError: Match does not exist
        InvalidStateError: Match is not completed
        AuthorizationError: Rater did not play in the match
        ConflictError: This rater already rated this player for this match
    """
    grades = {k: v for k, v in (grades or {}).items() if v is not None}
    unknown_fields = set(grades) - set(RATING_ATTRIBUTES)
    if unknown_fields:
        raise ValidationError(f"Unknown rating attributes: {', '.join(sorted(unknown_fields))}")
    for field, grade in grades.items():
        if grade not in _GRADES:
            raise ValidationError(f"Invalid grade for {field}: {grade}")

    suggestion = suggestion.strip() if suggestion else None
    if not grades and not suggestion:
        raise ValidationError("Provide at least one rating or a suggestion")

    match = await match_service.get_match_or_raise(session, match_id)
    if match.status != MatchStatus.COMPLETED.value:
        raise InvalidStateError("Can only rate players in completed matches")

    if rater_user_id == rated_user_id:
        raise ValidationError("Cannot rate yourself")

    participants = await match_service.get_participants(session, match_id)
    if not find_participant(participants, rater_user_id):
        raise AuthorizationError("Only participants can rate players in this match")
    if not find_participant(participants, rated_user_id):
        raise ValidationError("Rated user did not participate in this match")

    existing = await session.execute(
        select(PlayerRating.id).where(
            and_(
                PlayerRating.match_id == match_id,
                PlayerRating.rater_user_id == rater_user_id,
                PlayerRating.rated_user_id == rated_user_id,
            )
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("You have already rated this player for this match")

    rating = PlayerRating(
        match_id=match_id,
        rater_user_id=rater_user_id,
        rated_user_id=rated_user_id,
        suggestion=suggestion,
        **grades,
    )
    session.add(rating)
    await session.flush()
    await session.refresh(rating)

    job_id = await get_aggregation_queue().enqueue_aggregation(session, rated_user_id)
    logger.info(
        f"User {rater_user_id} rated user {rated_user_id} in match {match_id} "
        f"(aggregation job {job_id})"
    )
    return {"rating": _rating_to_dict(rating), "aggregation_job_id": job_id}


async def get_players_to_rate(session: AsyncSession, user_id: int, match_id: int) -> List[Dict]:
    """
    Other participants of a completed match, with whether the caller rated them.

    Returns:
        List of dicts with user_id, user_name, team, position and already_rated;
        empty unless the match is completed

    Raises:
        NotFoundError: Match does not exist
    """
    match = await match_service.get_match_or_raise(session, match_id)
    if match.status != MatchStatus.COMPLETED.value:
        return []

    participants = await match_service.get_participants(session, match_id)
    others = [p for p in participants if p.user_id != user_id]
    if not others:
        return []

    result = await session.execute(
        select(PlayerRating.rated_user_id).where(
            and_(PlayerRating.match_id == match_id, PlayerRating.rater_user_id == user_id)
        )
    )
    rated_ids = set(result.scalars().all())
    names = await user_service.get_display_names(session, [p.user_id for p in others])

    return [
        {
            "user_id": p.user_id,
            "user_name": names[p.user_id],
            "team": p.team,
            "position": p.position,
            "already_rated": p.user_id in rated_ids,
        }
        for p in others
    ]
