from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(), server_default=sa.func.now(), nullable=False)


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_table(
        "club",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("default_rules", JSONType, nullable=True),
        _timestamp("created_at"),
    )
    op.create_table(
        "club_member",
        sa.Column("club_id", sa.String(), sa.ForeignKey("club.id"), primary_key=True),
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("display_name_cache", sa.String(), nullable=True),
        _timestamp("joined_at"),
    )
    op.create_table(
        "competition",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("club_id", sa.String(), sa.ForeignKey("club.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("rules_mode", sa.String(), nullable=False),
        sa.Column("override_rules", JSONType, nullable=True),
        sa.Column("validation_enabled", sa.Boolean(), nullable=False),
        sa.Column("participant_user_ids", JSONType, nullable=False),
        sa.Column("total_rounds", sa.Integer(), nullable=False),
        sa.Column("pairing_algorithm", sa.String(), nullable=True),
        sa.Column("active_round_number", sa.Integer(), nullable=True),
        sa.Column("last_completed_round", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_competition_club_id", "competition", ["club_id"])
    op.create_table(
        "game",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("club_id", sa.String(), sa.ForeignKey("club.id"), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("participants", JSONType, nullable=False),
        sa.Column("competition_ids", JSONType, nullable=False),
        sa.Column("active_version_id", sa.String(), nullable=True),
        sa.Column("pending_proposal_id", sa.String(), nullable=True),
        sa.Column("pending_action_type", sa.String(), nullable=True),
        sa.Column("tournament_competition_id", sa.String(), nullable=True),
        sa.Column("tournament_round_id", sa.String(), nullable=True),
        sa.Column("tournament_table_index", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_table(
        "game_version",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("game_id", sa.String(), sa.ForeignKey("game.id"), nullable=False),
        sa.Column("club_id", sa.String(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("participants", JSONType, nullable=False),
        sa.Column("final_scores", JSONType, nullable=False),
        sa.Column("competition_ids", JSONType, nullable=False),
        sa.Column("rules_snapshot", JSONType, nullable=False),
        sa.Column("computed", JSONType, nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "game_id", "version_number", name="uq_game_version_game_id_number"
        ),
    )
    op.create_table(
        "proposal",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("club_id", sa.String(), nullable=False),
        sa.Column("game_id", sa.String(), sa.ForeignKey("game.id"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("from_version_id", sa.String(), nullable=True),
        sa.Column("proposed_version", JSONType, nullable=False),
        sa.Column("rules_snapshot", JSONType, nullable=False),
        sa.Column("computed_preview", JSONType, nullable=False),
        sa.Column("validation", JSONType, nullable=False),
        sa.Column("validation_required", sa.Boolean(), nullable=False),
        sa.Column("tournament_competition_id", sa.String(), nullable=True),
        sa.Column("tournament_round_id", sa.String(), nullable=True),
        sa.Column("tournament_table_index", sa.Integer(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_table(
        "validation_request",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("club_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column(
            "proposal_id", sa.String(), sa.ForeignKey("proposal.id"), nullable=False
        ),
        sa.Column("game_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_validation_request_user_id", "validation_request", ["user_id"]
    )
    op.create_table(
        "competition_leaderboard_entry",
        sa.Column("club_id", sa.String(), primary_key=True),
        sa.Column("competition_id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("total_points", sa.Float(), nullable=False),
        sa.Column("games_played", sa.Integer(), nullable=False),
        _timestamp("updated_at"),
    )
    op.create_table(
        "global_leaderboard_entry",
        sa.Column("club_id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("total_points", sa.Float(), nullable=False),
        sa.Column("games_played", sa.Integer(), nullable=False),
        _timestamp("updated_at"),
    )
    op.create_table(
        "tournament_round",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("club_id", sa.String(), nullable=False),
        sa.Column(
            "competition_id",
            sa.String(),
            sa.ForeignKey("competition.id"),
            nullable=False,
        ),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint(
            "competition_id",
            "round_number",
            name="uq_tournament_round_competition_id_round_number",
        ),
    )
    op.create_table(
        "tournament_table",
        sa.Column(
            "round_id",
            sa.String(),
            sa.ForeignKey("tournament_round.id"),
            primary_key=True,
        ),
        sa.Column("table_index", sa.Integer(), primary_key=True),
        sa.Column("player_ids", JSONType, nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("proposal_id", sa.String(), nullable=True),
        sa.Column("game_id", sa.String(), nullable=True),
    )
    op.create_table(
        "notification",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("payload", JSONType, nullable=False),
        _timestamp("created_at"),
        sa.Column("read_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])
    op.create_table(
        "push_subscription",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("endpoint", sa.String(), nullable=False, unique=True),
        sa.Column("p256dh", sa.String(), nullable=False),
        sa.Column("auth", sa.String(), nullable=False),
        sa.Column("content_encoding", sa.String(), nullable=False),
        _timestamp("created_at"),
    )


def downgrade():
    op.drop_table("push_subscription")
    op.drop_index("ix_notification_user_id", table_name="notification")
    op.drop_table("notification")
    op.drop_table("tournament_table")
    op.drop_table("tournament_round")
    op.drop_table("global_leaderboard_entry")
    op.drop_table("competition_leaderboard_entry")
    op.drop_index("ix_validation_request_user_id", table_name="validation_request")
    op.drop_table("validation_request")
    op.drop_table("proposal")
    op.drop_table("game_version")
    op.drop_table("game")
    op.drop_index("ix_competition_club_id", table_name="competition")
    op.drop_table("competition")
    op.drop_table("club_member")
    op.drop_table("club")
    op.drop_table("user")
