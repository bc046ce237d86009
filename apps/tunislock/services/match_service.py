"""
Match registry: creation, read views and terminal status transitions.

Joining and leaving live in roster_service; this module owns the match row
itself and the views that enrich it with participant data.
"""

from typing import List, Dict, Optional, Iterable
from datetime import datetime
from collections import defaultdict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from tunislock.database.models import (
    Match,
    MatchStatus,
    MatchSkillLevel,
    Participant,
    PitchType,
    TERMINAL_MATCH_STATUSES,
)
from tunislock.services import notification_service, user_service
from tunislock.services.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tunislock.utils.constants import (
    DEFAULT_PARTY_NAME_TEMPLATE,
    MAX_PLAYERS_NEEDED,
    MIN_PLAYERS_NEEDED,
)
from tunislock.utils.datetime_utils import utcnow, ensure_utc, isoformat_or_none
import logging

logger = logging.getLogger(__name__)

_PITCH_TYPES = {p.value for p in PitchType}
_MATCH_SKILL_LEVELS = {s.value for s in MatchSkillLevel}


# ============================================================================
# Serialization helpers
# ============================================================================

def match_to_dict(match: Match) -> Dict:
    """Serialize a Match row."""
    return {
        "id": match.id,
        "creator_id": match.creator_id,
        "location": match.location,
        "date_time": isoformat_or_none(match.date_time),
        "players_needed": match.players_needed,
        "description": match.description,
        "status": match.status,
        "location_available": match.location_available,
        "party_name": match.party_name,
        "venue_name": match.venue_name,
        "address": match.address,
        "pitch_type": match.pitch_type,
        "amenities": list(match.amenities) if match.amenities else None,
        "skill_level": match.skill_level,
        "created_at": isoformat_or_none(match.created_at),
    }


def participant_to_dict(participant: Participant, user_name: Optional[str] = None) -> Dict:
    """Serialize a Participant row, optionally with the resolved display name."""
    result = {
        "id": participant.id,
        "match_id": participant.match_id,
        "user_id": participant.user_id,
        "team": participant.team,
        "position": participant.position,
        "created_at": isoformat_or_none(participant.created_at),
    }
    if user_name is not None:
        result["user_name"] = user_name
    return result


async def get_match(
    session: AsyncSession, match_id: int, for_update: bool = False
) -> Optional[Match]:
    """
    Load a match row.

    Args:
        session: Database session
        match_id: Match ID
        for_update: Lock the row until the transaction ends

    Returns:
        Match or None
    """
    query = select(Match).where(Match.id == match_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_match_or_raise(
    session: AsyncSession, match_id: int, for_update: bool = False
) -> Match:
    """Like get_match but raises NotFoundError."""
    match = await get_match(session, match_id, for_update=for_update)
    if not match:
        raise NotFoundError("Match not found")
    return match


async def get_participants(session: AsyncSession, match_id: int) -> List[Participant]:
    """All participant rows of a match, in join order."""
    result = await session.execute(
        select(Participant)
        .where(Participant.match_id == match_id)
        .order_by(Participant.created_at.asc(), Participant.id.asc())
    )
    return list(result.scalars().all())


async def _participants_by_match(
    session: AsyncSession, match_ids: Iterable[int]
) -> Dict[int, List[Participant]]:
    ids = list(match_ids)
    grouped: Dict[int, List[Participant]] = defaultdict(list)
    if not ids:
        return grouped
    result = await session.execute(
        select(Participant)
        .where(Participant.match_id.in_(ids))
        .order_by(Participant.created_at.asc(), Participant.id.asc())
    )
    for participant in result.scalars().all():
        grouped[participant.match_id].append(participant)
    return grouped


async def _with_participants(session: AsyncSession, matches: List[Match]) -> List[Dict]:
    """Attach participants and participant_count to a list of matches."""
    grouped = await _participants_by_match(session, [m.id for m in matches])
    enriched = []
    for match in matches:
        participants = grouped.get(match.id, [])
        data = match_to_dict(match)
        data["participants"] = [participant_to_dict(p) for p in participants]
        data["participant_count"] = len(participants)
        enriched.append(data)
    return enriched


# ============================================================================
# Validation helpers
# ============================================================================

def validate_players_needed(players_needed: int) -> None:
    """
    Team matches need an even head count between 6 and 22.

    Raises:
        ValidationError: If the count is out of range or odd
    """
    if players_needed < MIN_PLAYERS_NEEDED or players_needed > MAX_PLAYERS_NEEDED:
        raise ValidationError(
            f"Players needed must be between {MIN_PLAYERS_NEEDED} and {MAX_PLAYERS_NEEDED} for team matches"
        )
    if players_needed % 2 != 0:
        raise ValidationError("Players needed must be even for team matches (equal teams)")


def resolve_party_name(location: str, party_name: Optional[str]) -> str:
    """Explicit party name (trimmed) or the default "Football at {location}"."""
    if party_name and party_name.strip():
        return party_name.strip()
    return DEFAULT_PARTY_NAME_TEMPLATE.format(location=location)


def _validate_venue(pitch_type: Optional[str], amenities: Optional[List[str]]) -> Optional[List[str]]:
    if pitch_type is not None and pitch_type not in _PITCH_TYPES:
        raise ValidationError(f"Invalid pitch type: {pitch_type}")
    if amenities is None:
        return None
    return [a.strip() for a in amenities if a and a.strip()]


async def party_name_taken(session: AsyncSession, party_name: str) -> bool:
    """Case-insensitive party name lookup across all matches."""
    result = await session.execute(
        select(Match.id).where(func.lower(Match.party_name) == party_name.lower()).limit(1)
    )
    return result.scalar_one_or_none() is not None


# ============================================================================
# Mutations
# ============================================================================

async def create_match(
    session: AsyncSession,
    creator_id: int,
    location: str,
    date_time: datetime,
    players_needed: int,
    location_available: bool,
    description: Optional[str] = None,
    party_name: Optional[str] = None,
    venue_name: Optional[str] = None,
    address: Optional[str] = None,
    pitch_type: Optional[str] = None,
    amenities: Optional[List[str]] = None,
    skill_level: Optional[str] = None,
) -> Dict:
    """
    Create a new match in status "open".

    Args:
        session: Database session
        creator_id: User creating (and owning) the match
        location: Free-text location
        date_time: Kick-off instant, must be in the future
        players_needed: Total head count, even, 6-22
        location_available: Whether the pitch is already booked
        description: Optional description
        party_name: Optional party name, defaults to "Football at {location}"
        venue_name, address, pitch_type, amenities: Optional venue details
        skill_level: Optional intended level

    Returns:
        Created match dict

    Raises:
        ValidationError: Bad head count, date not in the future, blank location
        ConflictError: Party name already used (case-insensitive)
    """
    if not location or not location.strip():
        raise ValidationError("Location is required")
    location = location.strip()

    validate_players_needed(players_needed)

    if ensure_utc(date_time) <= utcnow():
        raise ValidationError("Match date and time must be in the future")

    if skill_level is not None and skill_level not in _MATCH_SKILL_LEVELS:
        raise ValidationError(f"Invalid skill level: {skill_level}")
    amenities = _validate_venue(pitch_type, amenities)

    resolved_party_name = resolve_party_name(location, party_name)
    if await party_name_taken(session, resolved_party_name):
        raise ConflictError(
            "A party with this name already exists. Please choose a different name."
        )

    match = Match(
        creator_id=creator_id,
        location=location,
        date_time=ensure_utc(date_time),
        players_needed=players_needed,
        description=description,
        status=MatchStatus.OPEN.value,
        location_available=location_available,
        party_name=resolved_party_name,
        venue_name=venue_name,
        address=address,
        pitch_type=pitch_type,
        amenities=amenities,
        skill_level=skill_level,
    )
    session.add(match)
    await session.flush()
    await session.refresh(match)

    logger.info(f"User {creator_id} created match {match.id} ({resolved_party_name})")
    return match_to_dict(match)


async def update_venue(
    session: AsyncSession,
    match_id: int,
    user_id: int,
    venue_name: Optional[str] = None,
    address: Optional[str] = None,
    pitch_type: Optional[str] = None,
    amenities: Optional[List[str]] = None,
) -> Dict:
    """
    Update venue details. Fields passed as None are left unchanged.

    Raises:
        NotFoundError: Match does not exist
        AuthorizationError: Caller is not the creator
        InvalidStateError: Match is cancelled or completed
    """
    match = await get_match_or_raise(session, match_id, for_update=True)
    if match.creator_id != user_id:
        raise AuthorizationError("Only the creator can update the venue")
    if match.status in TERMINAL_MATCH_STATUSES:
        raise InvalidStateError(f"Match is already {match.status}")

    amenities = _validate_venue(pitch_type, amenities)
    if venue_name is not None:
        match.venue_name = venue_name
    if address is not None:
        match.address = address
    if pitch_type is not None:
        match.pitch_type = pitch_type
    if amenities is not None:
        match.amenities = amenities
    await session.flush()
    await session.refresh(match)
    return match_to_dict(match)


async def _transition_to_terminal(
    session: AsyncSession, match_id: int, user_id: int, new_status: MatchStatus, action: str
) -> Dict:
    match = await get_match_or_raise(session, match_id, for_update=True)
    if match.creator_id != user_id:
        raise AuthorizationError(f"Only the creator can {action} the match")
    # Terminal states are absorbing
    if match.status in TERMINAL_MATCH_STATUSES:
        raise InvalidStateError(f"Match is already {match.status}")

    previous_status = match.status
    match.status = new_status.value
    await session.flush()
    await session.refresh(match)
    logger.info(f"Match {match_id} moved {previous_status} -> {new_status.value} by user {user_id}")

    match_dict = match_to_dict(match)
    participants = await get_participants(session, match_id)
    await notification_service.notify_match_status_change(
        session,
        match_dict,
        [p.user_id for p in participants],
        actor_user_id=user_id,
        new_status=new_status.value,
    )
    return match_dict


async def cancel_match(session: AsyncSession, match_id: int, user_id: int) -> Dict:
    """
    Cancel a match (creator only).

    Raises:
        NotFoundError: Match does not exist
        AuthorizationError: Caller is not the creator
        InvalidStateError: Match already cancelled or completed
    """
    return await _transition_to_terminal(
        session, match_id, user_id, MatchStatus.CANCELLED, "cancel"
    )


async def complete_match(session: AsyncSession, match_id: int, user_id: int) -> Dict:
    """
    Mark a match as completed (creator only). Opens it for ratings.

    Raises:
        NotFoundError: Match does not exist
        AuthorizationError: Caller is not the creator
        InvalidStateError: Match already cancelled or completed
    """
    return await _transition_to_terminal(
        session, match_id, user_id, MatchStatus.COMPLETED, "complete"
    )


# ============================================================================
# Queries
# ============================================================================

async def get_match_details(session: AsyncSession, match_id: int) -> Optional[Dict]:
    """
    Match with resolved participant names and counts.

    Returns:
        Match dict with participants (each with user_name), participant_count
        and creator_name, or None if the match does not exist
    """
    match = await get_match(session, match_id)
    if not match:
        return None

    participants = await get_participants(session, match_id)
    names = await user_service.get_display_names(
        session, [p.user_id for p in participants] + [match.creator_id]
    )

    data = match_to_dict(match)
    data["participants"] = [participant_to_dict(p, names[p.user_id]) for p in participants]
    data["participant_count"] = len(participants)
    data["creator_name"] = names[match.creator_id]
    return data


async def list_open_matches(session: AsyncSession) -> List[Dict]:
    """Open matches, soonest first, with participants."""
    result = await session.execute(
        select(Match)
        .where(Match.status == MatchStatus.OPEN.value)
        .order_by(Match.date_time.asc(), Match.id.asc())
    )
    return await _with_participants(session, list(result.scalars().all()))


async def get_my_created_matches(session: AsyncSession, user_id: int) -> List[Dict]:
    """Matches created by the user, latest kick-off first."""
    result = await session.execute(
        select(Match)
        .where(Match.creator_id == user_id)
        .order_by(Match.date_time.desc(), Match.id.desc())
    )
    return await _with_participants(session, list(result.scalars().all()))


async def get_my_joined_matches(session: AsyncSession, user_id: int) -> List[Dict]:
    """Matches the user participates in, latest kick-off first."""
    result = await session.execute(
        select(Match)
        .join(Participant, Participant.match_id == Match.id)
        .where(Participant.user_id == user_id)
        .order_by(Match.date_time.desc(), Match.id.desc())
    )
    return await _with_participants(session, list(result.scalars().unique().all()))


async def search_parties(session: AsyncSession, search_term: str) -> List[Dict]:
    """
    Substring search on party name and location, newest first.

    Args:
        session: Database session
        search_term: Case-insensitive search text; blank returns []

    Returns:
        Matching matches with participants, participant_count and creator_name
    """
    term = (search_term or "").strip().lower()
    if not term:
        return []

    pattern = f"%{term}%"
    result = await session.execute(
        select(Match)
        .where(
            or_(
                func.lower(Match.party_name).like(pattern),
                func.lower(Match.location).like(pattern),
            )
        )
        .order_by(Match.created_at.desc(), Match.id.desc())
    )
    matches = list(result.scalars().all())
    enriched = await _with_participants(session, matches)
    names = await user_service.get_display_names(session, [m.creator_id for m in matches])
    for data in enriched:
        data["creator_name"] = names[data["creator_id"]]
    return enriched
