"""initial league schema

Revision ID: 20261019000100
Revises: 
Create Date: 2026-10-19 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019000100"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.UniqueConstraint("division_id", "name", name="uq_teams_division_name"),
    )
    op.create_index("ix_teams_division_id", "teams", ["division_id"], unique=False)

    op.create_table(
        "team_players",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("team_id", sa.String(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("gamertag", sa.String(), nullable=False),
        sa.UniqueConstraint("team_id", "gamertag", name="uq_team_players_team_gamertag"),
    )
    op.create_index("ix_team_players_id", "team_players", ["id"], unique=False)

    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("week", sa.Integer(), nullable=False),
        sa.Column("team1_id", sa.String(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("team2_id", sa.String(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("team1_maps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("team2_maps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("admin_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("source_series_id", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
    )
    op.create_index("ix_matches_id", "matches", ["id"], unique=False)
    op.create_index("ix_matches_division_id", "matches", ["division_id"], unique=False)

    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("match_id", sa.Integer(), sa.ForeignKey("matches.id"), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(), nullable=False, server_default=""),
        sa.Column("map", sa.String(), nullable=False, server_default=""),
        sa.Column("score_a", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("score_b", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_team_id", sa.String(), sa.ForeignKey("teams.id"), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_game_id", sa.String(), nullable=False),
        sa.UniqueConstraint("source_game_id", name="uq_games_source_game_id"),
    )
    op.create_index("ix_games_id", "games", ["id"], unique=False)
    op.create_index("ix_games_match_id", "games", ["match_id"], unique=False)

    op.create_table(
        "player_game_stats",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("games.id"), nullable=False),
        sa.Column("match_id", sa.Integer(), sa.ForeignKey("matches.id"), nullable=False),
        sa.Column("team_id", sa.String(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("gamertag", sa.String(), nullable=False),
        sa.Column("kills", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deaths", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("assists", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("damage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("damage_taken", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shots_fired", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shots_landed", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_player_game_stats_id", "player_game_stats", ["id"], unique=False)
    op.create_index("ix_player_game_stats_game_id", "player_game_stats", ["game_id"], unique=False)
    op.create_index("ix_player_game_stats_match_id", "player_game_stats", ["match_id"], unique=False)
    op.create_index("ix_player_game_stats_team_id", "player_game_stats", ["team_id"], unique=False)

    op.create_table(
        "match_submissions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("match_key", sa.String(), nullable=False),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("week", sa.Integer(), nullable=False),
        sa.Column("team1_id", sa.String(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("team2_id", sa.String(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("team1_maps", sa.Integer(), nullable=False),
        sa.Column("team2_maps", sa.Integer(), nullable=False),
        sa.Column("submitted_by", sa.String(), nullable=False, server_default="Unknown"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("match_id", sa.Integer(), sa.ForeignKey("matches.id"), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
    )
    op.create_index("ix_match_submissions_id", "match_submissions", ["id"], unique=False)
    op.create_index("ix_match_submissions_match_key", "match_submissions", ["match_key"], unique=False)
    op.create_index(
        "uq_match_submissions_pending_key",
        "match_submissions",
        ["match_key"],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_match_submissions_pending_key", table_name="match_submissions")
    op.drop_index("ix_match_submissions_match_key", table_name="match_submissions")
    op.drop_index("ix_match_submissions_id", table_name="match_submissions")
    op.drop_table("match_submissions")
    op.drop_index("ix_player_game_stats_team_id", table_name="player_game_stats")
    op.drop_index("ix_player_game_stats_match_id", table_name="player_game_stats")
    op.drop_index("ix_player_game_stats_game_id", table_name="player_game_stats")
    op.drop_index("ix_player_game_stats_id", table_name="player_game_stats")
    op.drop_table("player_game_stats")
    op.drop_index("ix_games_match_id", table_name="games")
    op.drop_index("ix_games_id", table_name="games")
    op.drop_table("games")
    op.drop_index("ix_matches_division_id", table_name="matches")
    op.drop_index("ix_matches_id", table_name="matches")
    op.drop_table("matches")
    op.drop_index("ix_team_players_id", table_name="team_players")
    op.drop_table("team_players")
    op.drop_index("ix_teams_division_id", table_name="teams")
    op.drop_table("teams")
