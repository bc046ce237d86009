"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List, Dict, Literal
from pydantic import BaseModel, Field, ConfigDict

TeamLiteral = Literal["A", "B"]
PositionLiteral = Literal["goalkeeper", "defender", "midfielder", "forward"]
GradeLiteral = Literal["S", "A", "B", "C", "D"]
PitchTypeLiteral = Literal["grass", "artificial_turf", "indoor_court", "dirt", "other"]
MatchSkillLiteral = Literal["beginner", "intermediate", "advanced", "open_to_all"]
PlayerSkillLiteral = Literal["beginner", "intermediate", "advanced", "professional"]


# ============================================================================
# Match schemas
# ============================================================================


class MatchCreate(BaseModel):
    """Request to create a match."""

    location: str = Field(..., min_length=1)
    date_time: datetime
    players_needed: int
    location_available: bool = False
    description: Optional[str] = None
    party_name: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    pitch_type: Optional[PitchTypeLiteral] = None
    amenities: Optional[List[str]] = None
    skill_level: Optional[MatchSkillLiteral] = None


class VenueUpdate(BaseModel):
    """Venue fields to change. Omitted fields stay as they are."""

    venue_name: Optional[str] = None
    address: Optional[str] = None
    pitch_type: Optional[PitchTypeLiteral] = None
    amenities: Optional[List[str]] = None


class ParticipantResponse(BaseModel):
    """A user's membership in a match."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    match_id: int
    user_id: int
    team: Optional[str] = None
    position: str
    created_at: Optional[str] = None
    user_name: Optional[str] = None  # Computed field


class MatchResponse(BaseModel):
    """Match with optional participant enrichment."""

    id: int
    creator_id: int
    location: str
    date_time: Optional[str] = None
    players_needed: int
    description: Optional[str] = None
    status: str
    location_available: bool
    party_name: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    pitch_type: Optional[str] = None
    amenities: Optional[List[str]] = None
    skill_level: Optional[str] = None
    created_at: Optional[str] = None
    participants: Optional[List[ParticipantResponse]] = None
    participant_count: Optional[int] = None
    creator_name: Optional[str] = None


class JoinMatchRequest(BaseModel):
    """Team and position to take."""

    team: TeamLiteral
    position: PositionLiteral


class JoinMatchResponse(BaseModel):
    """Result of a successful join."""

    participant: ParticipantResponse
    match_status: str
    is_full: bool


class LeaveMatchResponse(BaseModel):
    match_status: str


class TeamAvailability(BaseModel):
    count: int
    remaining: int
    positions: Dict[str, int]


class SlotAvailabilityResponse(BaseModel):
    """Remaining capacity per team and position."""

    match_id: int
    status: str
    players_needed: int
    participant_count: int
    remaining: int
    limits: Dict[str, int]
    teams: Dict[str, TeamAvailability]


# ============================================================================
# Rating schemas
# ============================================================================


class RatingCreate(BaseModel):
    """Grades for one player after a completed match."""

    rated_user_id: int
    suggestion: Optional[str] = None
    speed_given: Optional[GradeLiteral] = None
    defense_given: Optional[GradeLiteral] = None
    offense_given: Optional[GradeLiteral] = None
    shooting_given: Optional[GradeLiteral] = None
    dribbling_given: Optional[GradeLiteral] = None
    passing_given: Optional[GradeLiteral] = None

    def grades(self) -> Dict[str, Optional[str]]:
        return {
            "speed_given": self.speed_given,
            "defense_given": self.defense_given,
            "offense_given": self.offense_given,
            "shooting_given": self.shooting_given,
            "dribbling_given": self.dribbling_given,
            "passing_given": self.passing_given,
        }


class RatingResponse(BaseModel):
    id: int
    match_id: int
    rater_user_id: int
    rated_user_id: int
    suggestion: Optional[str] = None
    speed_given: Optional[str] = None
    defense_given: Optional[str] = None
    offense_given: Optional[str] = None
    shooting_given: Optional[str] = None
    dribbling_given: Optional[str] = None
    passing_given: Optional[str] = None
    created_at: Optional[str] = None


class SubmitRatingResponse(BaseModel):
    rating: RatingResponse
    aggregation_job_id: int


class PlayerToRateResponse(BaseModel):
    user_id: int
    user_name: str
    team: Optional[str] = None
    position: str
    already_rated: bool


# ============================================================================
# Profile & leaderboard schemas
# ============================================================================


class ProfileUpdate(BaseModel):
    """Editable profile fields. Omitted fields stay as they are."""

    display_name: Optional[str] = None
    bio: Optional[str] = None
    favorite_position: Optional[PositionLiteral] = None
    location: Optional[str] = None
    age: Optional[int] = None
    skill_level: Optional[PlayerSkillLiteral] = None
    country: Optional[str] = None


class ProfileResponse(BaseModel):
    """Public profile with aggregate stats (null when unset)."""

    user_id: int
    name: Optional[str] = None
    display_name: Optional[str] = None
    bio: Optional[str] = None
    favorite_position: Optional[str] = None
    location: Optional[str] = None
    age: Optional[int] = None
    skill_level: Optional[str] = None
    country: Optional[str] = None
    speed: Optional[int] = None
    defense: Optional[int] = None
    offense: Optional[int] = None
    shooting: Optional[int] = None
    dribbling: Optional[int] = None
    passing: Optional[int] = None
    overall_score: Optional[int] = None
    ratings_count: int = 0
    updated_at: Optional[str] = None


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    display_name: str
    favorite_position: Optional[str] = None
    country: Optional[str] = None
    overall_score: int
    ratings_count: int
    speed: Optional[int] = None
    defense: Optional[int] = None
    offense: Optional[int] = None
    shooting: Optional[int] = None
    dribbling: Optional[int] = None
    passing: Optional[int] = None


# ============================================================================
# Invitation schemas
# ============================================================================


class InvitationCreate(BaseModel):
    match_id: int
    invitee_id: int
    message: Optional[str] = None


class InvitationAccept(BaseModel):
    team: TeamLiteral
    position: PositionLiteral


class InvitationResponse(BaseModel):
    id: int
    match_id: int
    inviter_id: int
    invitee_id: int
    status: str
    message: Optional[str] = None
    created_at: Optional[str] = None
    responded_at: Optional[str] = None
    match: Optional[MatchResponse] = None
    inviter_name: Optional[str] = None  # Computed field
    invitee_name: Optional[str] = None  # Computed field


class AcceptInvitationResponse(JoinMatchResponse):
    invitation: InvitationResponse


# ============================================================================
# Chat schemas
# ============================================================================


class ChatMessageCreate(BaseModel):
    message_text: str


class ChatMessageResponse(BaseModel):
    id: int
    match_id: int
    user_id: int
    message_text: str
    author_name: str
    created_at: Optional[str] = None


# Notification schemas
class NotificationResponse(BaseModel):
    """Notification response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: Optional[dict] = None
    from_user_id: Optional[int] = None
    match_id: Optional[int] = None
    is_read: bool
    read_at: Optional[str] = None
    link_url: Optional[str] = None
    created_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    """Unread notification count response."""

    count: int


# ============================================================================
# Aggregation queue schemas
# ============================================================================


class AggregationJobResponse(BaseModel):
    id: int
    rated_user_id: int
    status: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None


class AggregationQueueStatusResponse(BaseModel):
    worker_running: bool
    running: List[AggregationJobResponse]
    pending: List[AggregationJobResponse]
    recent_completed: List[AggregationJobResponse]
    recent_failed: List[AggregationJobResponse]
