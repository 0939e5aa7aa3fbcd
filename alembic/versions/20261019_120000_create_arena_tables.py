"""Create players, queue, match and tournament tables

Revision ID: 3e8a51c0d7b4
Revises:
Create Date: 2026-10-19 12:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# Revision identifiers, used by Alembic.
revision: str = "3e8a51c0d7b4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("games_played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("play_time_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rating", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("rank_tier", sa.String(length=20), nullable=False, server_default="bronze"),
        sa.Column("career_rank", sa.String(length=20), nullable=False, server_default="Novice"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "games_played >= 0 AND wins >= 0 AND losses >= 0", name="ck_players_counts"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_players_rating", "players", ["rating"], unique=False)

    op.create_table(
        "tournaments",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("mode", sa.String(length=30), nullable=False),
        sa.Column("bracket_type", sa.String(length=30), nullable=False),
        sa.Column("seeding", sa.String(length=20), nullable=False, server_default="manual"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="upcoming"),
        sa.Column("winner_id", sa.String(length=64), nullable=True),
        sa.Column("auto_start", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auto_start_at", sa.DateTime(), nullable=True),
        sa.Column("bracket_state", _json(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_tournaments_status", "tournaments", ["status"], unique=False)

    op.create_table(
        "queue_entries",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("mode", sa.String(length=30), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_rating", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_rating", sa.Integer(), nullable=False, server_default="9999"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("closed_reason", sa.String(length=20), nullable=True),
        sa.Column("match_id", sa.String(length=64), nullable=True),
        sa.Column("joined_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("min_rating <= max_rating", name="ck_queue_entries_bounds"),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    # Only active rows take part, so closed entries never collide
    op.create_index(
        "uq_queue_entries_active_player_mode",
        "queue_entries",
        ["player_id", "mode"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )
    op.create_index(
        "idx_queue_entries_mode_joined", "queue_entries", ["mode", "joined_at"], unique=False
    )

    op.create_table(
        "matches",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("mode", sa.String(length=30), nullable=False),
        sa.Column("tournament_id", sa.String(length=64), nullable=True),
        sa.Column("round_number", sa.Integer(), nullable=True),
        sa.Column("round_code", sa.String(length=10), nullable=True),
        sa.Column("player_ids", _json(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="scheduled"),
        sa.Column("winner_id", sa.String(length=64), nullable=True),
        sa.Column("scores", _json(), nullable=True),
        sa.Column("forfeited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_matches_status", "matches", ["status"], unique=False)
    op.create_index(
        "idx_matches_tournament", "matches", ["tournament_id", "round_number"], unique=False
    )

    op.create_table(
        "tournament_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.String(length=64), nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("seed", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_id", "player_id", name="uq_tournament_participant"),
    )


def downgrade() -> None:
    op.drop_table("tournament_participants")
    op.drop_index("idx_matches_tournament", table_name="matches")
    op.drop_index("idx_matches_status", table_name="matches")
    op.drop_table("matches")
    op.drop_index("idx_queue_entries_mode_joined", table_name="queue_entries")
    op.drop_index("uq_queue_entries_active_player_mode", table_name="queue_entries")
    op.drop_table("queue_entries")
    op.drop_index("idx_tournaments_status", table_name="tournaments")
    op.drop_table("tournaments")
    op.drop_index("idx_players_rating", table_name="players")
    op.drop_table("players")
