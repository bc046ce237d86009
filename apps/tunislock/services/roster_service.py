"""
Roster allocation: team/position slot capacity and the join/leave state machine.

Slot ceilings are derived from ``players_needed`` on every call:

    max_per_team = players_needed / 2
    max_per_field_position = ceil((max_per_team - 1) / 3)

with one goalkeeper slot per team. The per-position ceiling is a soft cap;
the total participant count is the binding constraint once a match fills up.

Every check and the write happen in the caller's transaction with the match
row locked FOR UPDATE, so concurrent joiners for one match serialize.
"""

import math
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from tunislock.database.models import (
    Match,
    MatchStatus,
    NotificationType,
    Participant,
    Position,
    Team,
    TERMINAL_MATCH_STATUSES,
)
from tunislock.services import match_service, notification_service, user_service
from tunislock.services.errors import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tunislock.utils.constants import (
    FIELD_POSITION_COUNT,
    GOALKEEPERS_PER_TEAM,
    TEAMS_PER_MATCH,
)
import logging

logger = logging.getLogger(__name__)

_TEAMS = [t.value for t in Team]
_POSITIONS = [p.value for p in Position]


# ============================================================================
# Slot math
# ============================================================================

def compute_slot_limits(players_needed: int) -> Dict[str, int]:
    """
    Derive per-team slot ceilings from the match size.

    Args:
        players_needed: Total head count of the match (even)

    Returns:
        Dict with max_per_team, max_goalkeepers_per_team,
        max_field_players_per_team and max_per_field_position

    Example:
        players_needed=10 -> max_per_team=5, max_field_players_per_team=4,
        max_per_field_position=ceil(4/3)=2
    """
    max_per_team = players_needed // TEAMS_PER_MATCH
    max_field_players = max_per_team - GOALKEEPERS_PER_TEAM
    return {
        "max_per_team": max_per_team,
        "max_goalkeepers_per_team": GOALKEEPERS_PER_TEAM,
        "max_field_players_per_team": max_field_players,
        "max_per_field_position": math.ceil(max_field_players / FIELD_POSITION_COUNT),
    }


def validate_team_and_position(team: str, position: str) -> None:
    """
    Raises:
        ValidationError: If team or position is not a known value
    """
    if team not in _TEAMS:
        raise ValidationError(f"Invalid team: {team}")
    if position not in _POSITIONS:
        raise ValidationError(f"Invalid position: {position}")


def check_slot_capacity(
    players_needed: int, participants: List[Participant], team: str, position: str
) -> None:
    """
    Apply the capacity rules for one prospective participant.

    Checks, in order: total capacity, team capacity, the goalkeeper rule,
    then the field-position ceiling.

    Args:
        players_needed: Total head count of the match
        participants: Current participant rows of the match
        team: Requested team ("A" or "B")
        position: Requested position

    Raises:
        CapacityError: If any limit is already reached
    """
    if len(participants) >= players_needed:
        raise CapacityError("Match is full")

    limits = compute_slot_limits(players_needed)
    team_members = [p for p in participants if p.team == team]
    if len(team_members) >= limits["max_per_team"]:
        raise CapacityError(f"Team {team} is full ({limits['max_per_team']} players max)")

    same_position = sum(1 for p in team_members if p.position == position)
    if position == Position.GOALKEEPER.value:
        if same_position >= limits["max_goalkeepers_per_team"]:
            raise CapacityError(f"Team {team} already has a goalkeeper")
    elif same_position >= limits["max_per_field_position"]:
        raise CapacityError(
            f"Team {team} already has {same_position} {position}s "
            f"({limits['max_per_field_position']} max)"
        )


def build_slot_availability(players_needed: int, participants: List[Participant]) -> Dict:
    """
    Remaining capacity per team and position.

    Field-position counts are capped by the team's remaining slots, so a
    position never reports more openings than the team can still take.
    """
    limits = compute_slot_limits(players_needed)
    teams = {}
    for team in _TEAMS:
        team_members = [p for p in participants if p.team == team]
        team_remaining = max(limits["max_per_team"] - len(team_members), 0)
        positions = {}
        for position in _POSITIONS:
            ceiling = (
                limits["max_goalkeepers_per_team"]
                if position == Position.GOALKEEPER.value
                else limits["max_per_field_position"]
            )
            taken = sum(1 for p in team_members if p.position == position)
            positions[position] = min(max(ceiling - taken, 0), team_remaining)
        teams[team] = {
            "count": len(team_members),
            "remaining": team_remaining,
            "positions": positions,
        }
    return {
        "players_needed": players_needed,
        "participant_count": len(participants),
        "remaining": max(players_needed - len(participants), 0),
        "limits": limits,
        "teams": teams,
    }


# ============================================================================
# Join / leave
# ============================================================================

async def allocate_slot(
    session: AsyncSession,
    match_id: int,
    user_id: int,
    team: str,
    position: str,
    require_creator: bool = False,
) -> Dict:
    """
    Insert a participant after checking every slot rule.

    Shared by join, creator-join and invitation acceptance.

    Args:
        session: Database session
        match_id: Match to join
        user_id: Joining user
        team: "A" or "B"
        position: goalkeeper/defender/midfielder/forward
        require_creator: Only the match creator may join this way

    Returns:
        Dict with participant, match_status and is_full

    Raises:
        ValidationError: Unknown team or position
        NotFoundError: Match does not exist
        AuthorizationError: require_creator and caller is not the creator
        InvalidStateError: Match is not open
        ConflictError: User already participates
        CapacityError: Match, team or position is full
    """
    validate_team_and_position(team, position)

    match = await match_service.get_match_or_raise(session, match_id, for_update=True)
    if require_creator and match.creator_id != user_id:
        raise AuthorizationError("Only the match creator can use creator join")
    if match.status != MatchStatus.OPEN.value:
        raise InvalidStateError(f"Match is not open for joining (status: {match.status})")

    participants = await match_service.get_participants(session, match_id)
    if find_participant(participants, user_id):
        raise ConflictError("Already joined this match")

    check_slot_capacity(match.players_needed, participants, team, position)

    participant = Participant(match_id=match_id, user_id=user_id, team=team, position=position)
    session.add(participant)
    await session.flush()
    await session.refresh(participant)

    new_count = len(participants) + 1
    is_full = new_count >= match.players_needed
    if is_full:
        match.status = MatchStatus.FULL.value
        await session.flush()

    logger.info(
        f"User {user_id} joined match {match_id} as {position} on team {team} "
        f"({new_count}/{match.players_needed})"
    )

    await _notify_join(session, match, user_id, participants, is_full)

    return {
        "participant": match_service.participant_to_dict(participant),
        "match_status": match.status,
        "is_full": is_full,
    }


async def join_match(
    session: AsyncSession, match_id: int, user_id: int, team: str, position: str
) -> Dict:
    """Join an open match on a team and position. See `allocate_slot`."""
    return await allocate_slot(session, match_id, user_id, team, position)


async def creator_join_match(
    session: AsyncSession, match_id: int, user_id: int, team: str, position: str
) -> Dict:
    """Creator-only join. Same slot rules as `join_match`."""
    return await allocate_slot(session, match_id, user_id, team, position, require_creator=True)


async def leave_match(session: AsyncSession, match_id: int, user_id: int) -> Dict:
    """
    Remove the caller from a match.

    A full match reopens on any departure.

    Returns:
        Dict with match_status

    Raises:
        NotFoundError: Match does not exist or caller is not a participant
        InvalidStateError: Match is cancelled or completed
    """
    match = await match_service.get_match_or_raise(session, match_id, for_update=True)
    if match.status in TERMINAL_MATCH_STATUSES:
        raise InvalidStateError(f"Cannot leave a {match.status} match")

    result = await session.execute(
        select(Participant).where(
            Participant.match_id == match_id, Participant.user_id == user_id
        )
    )
    participant = result.scalar_one_or_none()
    if not participant:
        raise NotFoundError("Not a participant in this match")

    await session.delete(participant)
    if match.status == MatchStatus.FULL.value:
        match.status = MatchStatus.OPEN.value
    await session.flush()

    logger.info(f"User {user_id} left match {match_id}")

    if match.creator_id != user_id:
        name = await user_service.get_display_name(session, user_id)
        await notification_service.dispatch(
            session,
            match.creator_id,
            NotificationType.MATCH_PLAYER_LEFT.value,
            "Player Left",
            f'{name} left "{match.party_name}"',
            from_user_id=user_id,
            match_id=match_id,
            link_url=f"/matches/{match_id}",
        )

    return {"match_status": match.status}


async def get_slot_availability(session: AsyncSession, match_id: int) -> Dict:
    """
    Remaining capacity per team and position for a match.

    Raises:
        NotFoundError: Match does not exist
    """
    match = await match_service.get_match_or_raise(session, match_id)
    participants = await match_service.get_participants(session, match_id)
    availability = build_slot_availability(match.players_needed, participants)
    availability["match_id"] = match_id
    availability["status"] = match.status
    return availability


async def _notify_join(
    session: AsyncSession,
    match: Match,
    user_id: int,
    previous_participants: List[Participant],
    is_full: bool,
) -> None:
    link_url = f"/matches/{match.id}"
    if match.creator_id != user_id:
        name = await user_service.get_display_name(session, user_id)
        await notification_service.dispatch(
            session,
            match.creator_id,
            NotificationType.MATCH_PLAYER_JOINED.value,
            "Player Joined",
            f'{name} joined "{match.party_name}"',
            from_user_id=user_id,
            match_id=match.id,
            link_url=link_url,
        )

    if is_full:
        recipients = {p.user_id for p in previous_participants}
        recipients.add(user_id)
        await notification_service.dispatch_many(
            session,
            sorted(recipients),
            NotificationType.MATCH_FULL.value,
            "Match Full",
            f'"{match.party_name}" is full. See you on the pitch!',
            match_id=match.id,
            link_url=link_url,
        )


def find_participant(participants: List[Participant], user_id: int) -> Optional[Participant]:
    for participant in participants:
        if participant.user_id == user_id:
            return participant
    return None
