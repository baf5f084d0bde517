"""Division standings and player leaderboards derived from stored matches."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from hdc.models import Match, PlayerGameStat, Team


@dataclass
class StandingRow:
    team_id: str
    name: str
    players: list[str] = field(default_factory=list)
    wins: int = 0
    losses: int = 0
    maps_won: int = 0
    maps_lost: int = 0

    @property
    def map_diff(self) -> int:
        return self.maps_won - self.maps_lost


@dataclass
class LeaderboardRow:
    gamertag: str
    team_id: str
    team_name: str
    games_played: int = 0
    total_kills: int = 0
    total_deaths: int = 0
    total_assists: int = 0
    total_damage: int = 0
    shots_fired: int = 0
    shots_landed: int = 0

    @property
    def overall_kd(self) -> float:
        if self.total_deaths == 0:
            return float(self.total_kills)
        return self.total_kills / self.total_deaths

    @property
    def avg_kills_per_game(self) -> float:
        if self.games_played == 0:
            return 0.0
        return self.total_kills / self.games_played

    @property
    def overall_accuracy(self) -> float:
        if self.shots_fired == 0:
            return 0.0
        return 100.0 * self.shots_landed / self.shots_fired


class LeaderboardSort(str, enum.Enum):
    OVERALL_KD = "overall_kd"
    TOTAL_KILLS = "total_kills"
    TOTAL_DAMAGE = "total_damage"
    AVG_KILLS_PER_GAME = "avg_kills_per_game"
    OVERALL_ACCURACY = "overall_accuracy"


def compute_standings(db: Session, division_id: int) -> list[StandingRow]:
    """Series wins/losses and map totals per team, best record first.

    Ordered by wins, then map differential, then name.
    """

    teams = db.query(Team).filter(Team.division_id == division_id).all()
    rows = {
        team.id: StandingRow(
            team_id=team.id,
            name=team.name,
            players=[player.gamertag for player in team.players],
        )
        for team in teams
    }

    matches = db.query(Match).filter(Match.division_id == division_id).all()
    for match in matches:
        first = rows.get(match.team1_id)
        second = rows.get(match.team2_id)
        if first is None or second is None:
            continue
        first.maps_won += match.team1_maps
        first.maps_lost += match.team2_maps
        second.maps_won += match.team2_maps
        second.maps_lost += match.team1_maps
        if match.team1_maps > match.team2_maps:
            first.wins += 1
            second.losses += 1
        elif match.team2_maps > match.team1_maps:
            second.wins += 1
            first.losses += 1

    return sorted(rows.values(), key=lambda row: (-row.wins, -row.map_diff, row.name.lower()))


def compute_leaderboard(
    db: Session,
    division_id: int,
    sort_by: LeaderboardSort = LeaderboardSort.OVERALL_KD,
) -> list[LeaderboardRow]:
    gamertag_key = func.lower(PlayerGameStat.gamertag)
    rows = (
        db.query(
            gamertag_key,
            func.min(PlayerGameStat.gamertag),
            PlayerGameStat.team_id,
            Team.name,
            func.count(distinct(PlayerGameStat.game_id)),
            func.sum(PlayerGameStat.kills),
            func.sum(PlayerGameStat.deaths),
            func.sum(PlayerGameStat.assists),
            func.sum(PlayerGameStat.damage),
            func.sum(PlayerGameStat.shots_fired),
            func.sum(PlayerGameStat.shots_landed),
        )
        .join(Match, Match.id == PlayerGameStat.match_id)
        .join(Team, Team.id == PlayerGameStat.team_id)
        .filter(Match.division_id == division_id)
        .group_by(gamertag_key, PlayerGameStat.team_id, Team.name)
        .all()
    )

    board = [
        LeaderboardRow(
            gamertag=gamertag,
            team_id=team_id,
            team_name=team_name,
            games_played=games or 0,
            total_kills=kills or 0,
            total_deaths=deaths or 0,
            total_assists=assists or 0,
            total_damage=damage or 0,
            shots_fired=fired or 0,
            shots_landed=landed or 0,
        )
        for _key, gamertag, team_id, team_name, games, kills, deaths, assists, damage, fired, landed in rows
    ]
    sort_attr = LeaderboardSort(sort_by).value
    board.sort(key=lambda row: (-getattr(row, sort_attr), row.gamertag.lower()))
    return board
