"""
SQLAlchemy ORM models for the Tunis Lock matchmaking system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    JSON,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tunislock.database.db import Base


class MatchStatus(str, enum.Enum):
    """Match lifecycle status enum."""

    OPEN = "open"
    FULL = "full"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


TERMINAL_MATCH_STATUSES = (MatchStatus.CANCELLED.value, MatchStatus.COMPLETED.value)


class Team(str, enum.Enum):
    """Team side within a match."""

    A = "A"
    B = "B"


class Position(str, enum.Enum):
    """Playing position enum."""

    GOALKEEPER = "goalkeeper"
    DEFENDER = "defender"
    MIDFIELDER = "midfielder"
    FORWARD = "forward"


FIELD_POSITIONS = (Position.DEFENDER, Position.MIDFIELDER, Position.FORWARD)


class PitchType(str, enum.Enum):
    """Venue surface enum."""

    GRASS = "grass"
    ARTIFICIAL_TURF = "artificial_turf"
    INDOOR_COURT = "indoor_court"
    DIRT = "dirt"
    OTHER = "other"


class MatchSkillLevel(str, enum.Enum):
    """Intended level of a match."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    OPEN_TO_ALL = "open_to_all"


class PlayerSkillLevel(str, enum.Enum):
    """Self-declared player level on a profile."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    PROFESSIONAL = "professional"


class Grade(str, enum.Enum):
    """Letter grade a rater gives for one attribute."""

    S = "S"
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class InvitationStatus(str, enum.Enum):
    """Party invitation status enum."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    PARTY_INVITATION_RECEIVED = "party_invitation_received"
    PARTY_INVITATION_ACCEPTED = "party_invitation_accepted"
    PARTY_INVITATION_DECLINED = "party_invitation_declined"
    MATCH_PLAYER_JOINED = "match_player_joined"
    MATCH_PLAYER_LEFT = "match_player_left"
    MATCH_FULL = "match_full"
    MATCH_CANCELLED = "match_cancelled"
    MATCH_COMPLETED = "match_completed"


class AggregationJobStatus(str, enum.Enum):
    """Profile aggregation job status enum."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class User(Base):
    """Local user record for an identity issued by the external provider."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    auth_subject = Column(String, nullable=False, unique=True)  # `sub` claim from the provider
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    profile = relationship("UserProfile", back_populates="user", uselist=False)

    __table_args__ = (Index("idx_users_auth_subject", "auth_subject"),)


class UserProfile(Base):
    """Editable profile plus the aggregate skill snapshot built from ratings."""

    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    display_name = Column(String(30), nullable=True)
    bio = Column(Text, nullable=True)
    favorite_position = Column(String(20), nullable=True)  # Position enum value
    location = Column(String, nullable=True)  # Free-text home area
    age = Column(Integer, nullable=True)
    skill_level = Column(String(20), nullable=True)  # PlayerSkillLevel enum value
    country = Column(String, nullable=True)

    # Aggregate stats (0-100). NULL means unset, which is not the same as 0.
    speed = Column(Integer, nullable=True)
    defense = Column(Integer, nullable=True)
    offense = Column(Integer, nullable=True)
    shooting = Column(Integer, nullable=True)
    dribbling = Column(Integer, nullable=True)
    passing = Column(Integer, nullable=True)
    overall_score = Column(Integer, nullable=True)
    ratings_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="profile")

    __table_args__ = (
        Index("uq_user_profiles_display_name_lower", func.lower(display_name), unique=True),
        Index("idx_user_profiles_leaderboard", "overall_score", "ratings_count"),
        CheckConstraint("age IS NULL OR (age >= 13 AND age <= 100)", name="ck_user_profiles_age"),
    )


class Match(Base):
    """One scheduled team game."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    location = Column(String, nullable=False)
    date_time = Column(DateTime(timezone=True), nullable=False)
    players_needed = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default=MatchStatus.OPEN.value, nullable=False)
    location_available = Column(Boolean, default=False, nullable=False)
    party_name = Column(String, nullable=True)

    # Venue details
    venue_name = Column(String, nullable=True)
    address = Column(String, nullable=True)
    pitch_type = Column(String(20), nullable=True)  # PitchType enum value
    amenities = Column(JSON, nullable=True)  # list of strings
    skill_level = Column(String(20), nullable=True)  # MatchSkillLevel enum value

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("User", foreign_keys=[creator_id])
    participants = relationship("Participant", back_populates="match")

    __table_args__ = (
        CheckConstraint(
            "players_needed >= 6 AND players_needed <= 22 AND players_needed % 2 = 0",
            name="ck_matches_players_needed",
        ),
        CheckConstraint(
            "status IN ('open', 'full', 'cancelled', 'completed')", name="ck_matches_status"
        ),
        Index("uq_matches_party_name_lower", func.lower(party_name), unique=True),
        Index("idx_matches_creator_date", "creator_id", "date_time"),
        Index("idx_matches_status_date", "status", "date_time"),
    )


class Participant(Base):
    """One user's membership (team + position) in one match."""

    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team = Column(String(1), nullable=True)  # NULL only on legacy rows
    position = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    match = relationship("Match", back_populates="participants")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_participants_match_user"),
        Index(
            "uq_participants_one_goalkeeper_per_team",
            "match_id",
            "team",
            unique=True,
            postgresql_where=(position == Position.GOALKEEPER.value),
            sqlite_where=(position == Position.GOALKEEPER.value),
        ),
        Index("idx_participants_match_team", "match_id", "team"),
        Index("idx_participants_user", "user_id"),
    )


class PlayerRating(Base):
    """One rater's attribute grades for one ratee in one completed match."""

    __tablename__ = "player_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    rater_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rated_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    suggestion = Column(Text, nullable=True)
    speed_given = Column(String(1), nullable=True)
    defense_given = Column(String(1), nullable=True)
    offense_given = Column(String(1), nullable=True)
    shooting_given = Column(String(1), nullable=True)
    dribbling_given = Column(String(1), nullable=True)
    passing_given = Column(String(1), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    match = relationship("Match")
    rater = relationship("User", foreign_keys=[rater_user_id])
    rated = relationship("User", foreign_keys=[rated_user_id])

    __table_args__ = (
        UniqueConstraint(
            "match_id", "rater_user_id", "rated_user_id", name="uq_player_ratings_match_rater_rated"
        ),
        CheckConstraint("rater_user_id <> rated_user_id", name="ck_player_ratings_not_self"),
        Index("idx_player_ratings_rated_user", "rated_user_id"),
    )


class PartyInvitation(Base):
    """Invitation for a user to join a match's party."""

    __tablename__ = "party_invitations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    inviter_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    invitee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String(20), default=InvitationStatus.PENDING.value, nullable=False)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    match = relationship("Match")
    inviter = relationship("User", foreign_keys=[inviter_id])
    invitee = relationship("User", foreign_keys=[invitee_id])

    __table_args__ = (
        Index("idx_party_invitations_invitee_status", "invitee_id", "status"),
        Index("idx_party_invitations_match_invitee", "match_id", "invitee_id"),
        Index("idx_party_invitations_match_inviter", "match_id", "inviter_id"),
    )


class ChatMessage(Base):
    """Party chat message."""

    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    message_text = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_chat_messages_match", "match_id", "created_at"),)


class Notification(Base):
    """User notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(
        Text, nullable=True
    )  # JSON string for flexible metadata (invitation_id, team, etc.)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    link_url = Column(String(500), nullable=True)  # Navigation target
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )


class ProfileAggregationJob(Base):
    """Queue for profile aggregation jobs."""

    __tablename__ = "profile_aggregation_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rated_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        Enum(AggregationJobStatus), default=AggregationJobStatus.PENDING, nullable=False
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_profile_aggregation_jobs_status", "status"),
        Index("idx_profile_aggregation_jobs_user_status", "rated_user_id", "status"),
    )
