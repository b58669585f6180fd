from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Float,
    Boolean,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from .db import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class User(Base):
    __tablename__ = "user"
    id = Column(String, primary_key=True)
    display_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class Club(Base):
    __tablename__ = "club"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    # Full RuleSet payload; NULL means the built-in defaults apply.
    default_rules = Column(JSONType, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class ClubMember(Base):
    __tablename__ = "club_member"
    club_id = Column(String, ForeignKey("club.id"), primary_key=True)
    user_id = Column(String, primary_key=True)
    role = Column(String, nullable=False, default="member")  # "admin" | "member"
    display_name_cache = Column(String, nullable=True)
    joined_at = Column(DateTime, server_default=func.now(), nullable=False)


class Competition(Base):
    __tablename__ = "competition"
    id = Column(String, primary_key=True)
    club_id = Column(String, ForeignKey("club.id"), nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # "championship" | "tournament"
    status = Column(String, nullable=False, default="active")  # "active" | "archived"
    rules_mode = Column(String, nullable=False, default="inherit")  # "inherit" | "override"
    override_rules = Column(JSONType, nullable=True)
    validation_enabled = Column(Boolean, nullable=False, default=True)
    participant_user_ids = Column(JSONType, nullable=False, default=list)
    total_rounds = Column(Integer, nullable=False, default=0)
    pairing_algorithm = Column(String, nullable=True)
    active_round_number = Column(Integer, nullable=True)
    last_completed_round = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_competition_club_id", "club_id"),)


class Game(Base):
    __tablename__ = "game"
    id = Column(String, primary_key=True)
    club_id = Column(String, ForeignKey("club.id"), nullable=False)
    created_by = Column(String, nullable=False)
    status = Column(String, nullable=False)
    participants = Column(JSONType, nullable=False)
    competition_ids = Column(JSONType, nullable=False, default=list)
    active_version_id = Column(String, nullable=True)
    pending_proposal_id = Column(String, nullable=True)
    pending_action_type = Column(String, nullable=True)  # "create" | "edit"
    tournament_competition_id = Column(String, nullable=True)
    tournament_round_id = Column(String, nullable=True)
    tournament_table_index = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class GameVersion(Base):
    """Immutable, sequence-numbered snapshot of an agreed game result."""

    __tablename__ = "game_version"
    id = Column(String, primary_key=True)
    game_id = Column(String, ForeignKey("game.id"), nullable=False)
    club_id = Column(String, nullable=False)
    version_number = Column(Integer, nullable=False)
    participants = Column(JSONType, nullable=False)
    final_scores = Column(JSONType, nullable=False)
    competition_ids = Column(JSONType, nullable=False)
    rules_snapshot = Column(JSONType, nullable=False)
    computed = Column(JSONType, nullable=False)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "game_id", "version_number", name="uq_game_version_game_id_number"
        ),
    )


class Proposal(Base):
    __tablename__ = "proposal"
    id = Column(String, primary_key=True)
    club_id = Column(String, nullable=False)
    game_id = Column(String, ForeignKey("game.id"), nullable=False)
    type = Column(String, nullable=False)  # "create" | "edit"
    status = Column(String, nullable=False)
    from_version_id = Column(String, nullable=True)
    proposed_version = Column(JSONType, nullable=False)
    rules_snapshot = Column(JSONType, nullable=False)
    computed_preview = Column(JSONType, nullable=False)
    # Loosely shaped on purpose; always read through approval.resolve().
    validation = Column(JSONType, nullable=False)
    validation_required = Column(Boolean, nullable=False, default=True)
    tournament_competition_id = Column(String, nullable=True)
    tournament_round_id = Column(String, nullable=True)
    tournament_table_index = Column(Integer, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ValidationRequest(Base):
    """Denormalized per-voter inbox row for a pending proposal."""

    __tablename__ = "validation_request"
    id = Column(String, primary_key=True)
    club_id = Column(String, nullable=False)
    user_id = Column(String, nullable=False)
    type = Column(String, nullable=False)  # "game_create" | "game_edit"
    proposal_id = Column(String, ForeignKey("proposal.id"), nullable=False)
    game_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_validation_request_user_id", "user_id"),)


class CompetitionLeaderboardEntry(Base):
    __tablename__ = "competition_leaderboard_entry"
    club_id = Column(String, primary_key=True)
    competition_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    total_points = Column(Float, nullable=False, default=0.0)
    games_played = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class GlobalLeaderboardEntry(Base):
    __tablename__ = "global_leaderboard_entry"
    club_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    total_points = Column(Float, nullable=False, default=0.0)
    games_played = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TournamentRound(Base):
    __tablename__ = "tournament_round"
    id = Column(String, primary_key=True)
    club_id = Column(String, nullable=False)
    competition_id = Column(String, ForeignKey("competition.id"), nullable=False)
    round_number = Column(Integer, nullable=False)
    status = Column(String, nullable=False)  # "scheduled" | "active" | "completed"
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "competition_id",
            "round_number",
            name="uq_tournament_round_competition_id_round_number",
        ),
    )


class TournamentTable(Base):
    __tablename__ = "tournament_table"
    round_id = Column(String, ForeignKey("tournament_round.id"), primary_key=True)
    table_index = Column(Integer, primary_key=True)
    player_ids = Column(JSONType, nullable=False)
    status = Column(String, nullable=False, default="awaiting_result")
    proposal_id = Column(String, nullable=True)
    game_id = Column(String, nullable=True)


class Notification(Base):
    __tablename__ = "notification"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    type = Column(String, nullable=False)
    payload = Column(JSONType, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    read_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_notification_user_id", "user_id"),)


class PushSubscription(Base):
    __tablename__ = "push_subscription"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    endpoint = Column(String, nullable=False, unique=True)
    p256dh = Column(String, nullable=False)
    auth = Column(String, nullable=False)
    content_encoding = Column(String, nullable=False, default="aes128gcm")
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
