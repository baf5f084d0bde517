"""Internal data contract for series ingestion."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, model_validator


class TeamSide(str, enum.Enum):
    """Series-scoped team tag. A is the side that won game 1."""

    A = "A"
    B = "B"

    @property
    def other(self) -> TeamSide:
        return TeamSide.B if self is TeamSide.A else TeamSide.A


class PlayerGameStat(BaseModel):
    model_config = ConfigDict(frozen=True)

    gamertag: str
    won: bool
    kills: NonNegativeInt = 0
    deaths: NonNegativeInt = 0
    assists: NonNegativeInt = 0
    damage_dealt: NonNegativeInt = 0
    damage_taken: NonNegativeInt = 0
    shots_fired: NonNegativeInt = 0
    shots_landed: NonNegativeInt = 0


def format_duration(seconds: int) -> str:
    """Render seconds as ``m:ss``."""

    minutes, rest = divmod(max(int(seconds), 0), 60)
    return f"{minutes}:{rest:02d}"


class GameRecord(BaseModel):
    """
    One completed game, or one fragment of a game, as exported by the stat service.
    """

    model_config = ConfigDict(frozen=True)

    game_id: str
    series_id: str = ""
    map: str
    mode: str
    duration_seconds: NonNegativeInt = 0
    winner_score: NonNegativeInt = 0
    loser_score: NonNegativeInt = 0
    winning_gamertags: list[str]
    losing_gamertags: list[str]
    players: list[PlayerGameStat] = Field(default_factory=list)
    source_game_ids: list[str] = Field(default_factory=list)
    # lower-cased gamertag -> raw in-game team label (spreadsheet exports only)
    team_labels: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_sources(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("source_game_ids") and data.get("game_id"):
            data = {**data, "source_game_ids": [data["game_id"]]}
        return data

    @model_validator(mode="after")
    def _check_rosters(self) -> GameRecord:
        winners = {tag.lower() for tag in self.winning_gamertags}
        losers = {tag.lower() for tag in self.losing_gamertags}
        if len(winners) != len(self.winning_gamertags) or len(losers) != len(self.losing_gamertags):
            raise ValueError("gamertags must be unique within a game")
        if winners & losers:
            raise ValueError("a gamertag cannot be on both the winning and losing side")
        for player in self.players:
            key = player.gamertag.lower()
            if key not in winners and key not in losers:
                raise ValueError(f"player {player.gamertag!r} is on neither side")
        return self

    @property
    def total_kills(self) -> int:
        return sum(player.kills for player in self.players)

    @property
    def duration(self) -> str:
        return format_duration(self.duration_seconds)

    @property
    def is_void(self) -> bool:
        return self.winner_score == 0 and self.loser_score == 0 and self.total_kills == 0

    @property
    def merge_key(self) -> tuple[str, str]:
        return (self.map.strip().lower(), self.mode.strip().lower())


class MergedSeriesGame(GameRecord):
    team_a_won: bool
    # lower-cased gamertag -> side
    player_sides: dict[str, TeamSide] = Field(default_factory=dict)

    @property
    def team_a_score(self) -> int:
        return self.winner_score if self.team_a_won else self.loser_score

    @property
    def team_b_score(self) -> int:
        return self.loser_score if self.team_a_won else self.winner_score

    def side_of(self, gamertag: str) -> TeamSide | None:
        return self.player_sides.get(gamertag.lower())


class SeriesResult(BaseModel):
    series_id: str
    team0_id: str
    team1_id: str
    team0_wins: int
    team1_wins: int
    games: list[MergedSeriesGame]
