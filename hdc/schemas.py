from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TeamOut(BaseModel):
    id: str
    division_id: int
    name: str
    players: list[str] = []


class StandingOut(BaseModel):
    team_id: str
    name: str
    players: list[str]
    wins: int
    losses: int
    maps_won: int
    maps_lost: int
    map_diff: int

    class Config:
        from_attributes = True


class LeaderboardOut(BaseModel):
    gamertag: str
    team_id: str
    team_name: str
    games_played: int
    total_kills: int
    total_deaths: int
    total_assists: int
    total_damage: int
    overall_kd: float
    avg_kills_per_game: float
    overall_accuracy: float

    class Config:
        from_attributes = True


class PlayerStatOut(BaseModel):
    team_id: str
    gamertag: str
    kills: int
    deaths: int
    assists: int
    damage: int
    damage_taken: int
    shots_fired: int
    shots_landed: int

    class Config:
        from_attributes = True


class GameOut(BaseModel):
    id: int
    number: int
    mode: str
    map: str
    score_a: int
    score_b: int
    winner_team_id: Optional[str]
    duration_seconds: int
    source_game_id: str
    player_stats: list[PlayerStatOut] = []

    class Config:
        from_attributes = True


class MatchOut(BaseModel):
    id: int
    division_id: int
    week: int
    team1_id: str
    team2_id: str
    team1_maps: int
    team2_maps: int
    admin_approved: bool
    source_series_id: Optional[str]
    created_at: Optional[datetime]
    games: list[GameOut] = []

    class Config:
        from_attributes = True


class SubmissionIn(BaseModel):
    division_id: int
    week: int
    your_team_id: str
    opponent_id: str
    your_maps: int = Field(ge=0)
    opponent_maps: int = Field(ge=0)
    submitted_by: Optional[str] = None


class SubmissionOut(BaseModel):
    id: int
    match_key: str
    division_id: int
    week: int
    team1_id: str
    team2_id: str
    team1_maps: int
    team2_maps: int
    submitted_by: str
    status: str
    match_id: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class SubmissionResultOut(BaseModel):
    outcome: str
    message: str
    match_key: str
    submission_id: int
    match_id: Optional[int] = None


class AdminMatchIn(BaseModel):
    division_id: int
    week: int
    team_a_id: str
    team_b_id: str
    team_a_maps: int = Field(ge=0)
    team_b_maps: int = Field(ge=0)


class SeriesImportIn(BaseModel):
    series_url: str
    division_id: int
    week: int
    team0_id: Optional[str] = None
    team1_id: Optional[str] = None


class SkippedGameOut(BaseModel):
    game_id: str
    reason: str


class MergeNoteOut(BaseModel):
    map: str
    mode: str
    decision: str
    source_game_ids: list[str]
    reason: str


class SeriesImportOut(BaseModel):
    series_id: str
    match_id: int
    team0_id: str
    team1_id: str
    team0_wins: int
    team1_wins: int
    total_games: int
    processed_games: int
    summary: str
    skipped: list[SkippedGameOut] = []
    merge_notes: list[MergeNoteOut] = []
    data_quality_flags: list[str] = []
