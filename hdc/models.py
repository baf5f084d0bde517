import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .db import Base


class SubmissionStatus(str, enum.Enum):
    PENDING = "pending"
    DISPUTED = "disputed"
    RESOLVED = "resolved"


def _new_team_id() -> str:
    return str(uuid.uuid4())


class Team(Base):
    __tablename__ = "teams"
    __table_args__ = (
        UniqueConstraint("division_id", "name", name="uq_teams_division_name"),
    )

    id = Column(String, primary_key=True, default=_new_team_id)
    division_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    players = relationship(
        "TeamPlayer",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamPlayer.id",
    )


class TeamPlayer(Base):
    """Declared roster entry; gamertags as typed by the team captain."""

    __tablename__ = "team_players"
    __table_args__ = (
        UniqueConstraint("team_id", "gamertag", name="uq_team_players_team_gamertag"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String, ForeignKey("teams.id"), nullable=False)
    gamertag = Column(String, nullable=False)

    team = relationship("Team", back_populates="players")


class Match(Base):
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True)
    division_id = Column(Integer, nullable=False, index=True)
    week = Column(Integer, nullable=False)
    # team1_id < team2_id lexically
    team1_id = Column(String, ForeignKey("teams.id"), nullable=False)
    team2_id = Column(String, ForeignKey("teams.id"), nullable=False)
    team1_maps = Column(Integer, nullable=False, default=0)
    team2_maps = Column(Integer, nullable=False, default=0)
    admin_approved = Column(Boolean, nullable=False, default=False)
    source_series_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    games = relationship(
        "Game",
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="Game.number",
    )


class Game(Base):
    __tablename__ = "games"
    __table_args__ = (
        UniqueConstraint("source_game_id", name="uq_games_source_game_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False, index=True)
    number = Column(Integer, nullable=False)
    mode = Column(String, nullable=False, default="")
    map = Column(String, nullable=False, default="")
    # score_a belongs to the match's team1, score_b to team2
    score_a = Column(Integer, nullable=False, default=0)
    score_b = Column(Integer, nullable=False, default=0)
    winner_team_id = Column(String, ForeignKey("teams.id"), nullable=True)
    duration_seconds = Column(Integer, nullable=False, default=0)
    source_game_id = Column(String, nullable=False)

    match = relationship("Match", back_populates="games")
    player_stats = relationship(
        "PlayerGameStat",
        back_populates="game",
        cascade="all, delete-orphan",
    )


class PlayerGameStat(Base):
    __tablename__ = "player_game_stats"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False, index=True)
    team_id = Column(String, ForeignKey("teams.id"), nullable=False, index=True)
    gamertag = Column(String, nullable=False)
    kills = Column(Integer, nullable=False, default=0)
    deaths = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    damage = Column(Integer, nullable=False, default=0)
    damage_taken = Column(Integer, nullable=False, default=0)
    shots_fired = Column(Integer, nullable=False, default=0)
    shots_landed = Column(Integer, nullable=False, default=0)

    game = relationship("Game", back_populates="player_stats")


class MatchSubmission(Base):
    __tablename__ = "match_submissions"
    __table_args__ = (
        # A second submission for the same fixture must resolve or dispute the first.
        Index(
            "uq_match_submissions_pending_key",
            "match_key",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    match_key = Column(String, nullable=False, index=True)
    division_id = Column(Integer, nullable=False)
    week = Column(Integer, nullable=False)
    team1_id = Column(String, ForeignKey("teams.id"), nullable=False)
    team2_id = Column(String, ForeignKey("teams.id"), nullable=False)
    team1_maps = Column(Integer, nullable=False)
    team2_maps = Column(Integer, nullable=False)
    submitted_by = Column(String, nullable=False, default="Unknown")
    status = Column(String, nullable=False, default=SubmissionStatus.PENDING.value)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
