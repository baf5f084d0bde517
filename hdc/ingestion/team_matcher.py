"""Match resolved series rosters to known league teams."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import Session

from hdc.ingestion.resolver import ResolvedSeries
from hdc.ingestion.schema import TeamSide
from hdc.models import PlayerGameStat as PlayerGameStatRow
from hdc.models import Team

logger = logging.getLogger(__name__)

MIN_MATCH_SCORE = 1


class MatchStatus(str, enum.Enum):
    MATCHED = "matched"
    TIED = "tied"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class TeamRoster:
    team_id: str
    name: str
    declared_gamertags: tuple[str, ...] = ()
    historical_gamertags: frozenset[str] = frozenset()


@dataclass(frozen=True)
class TeamMatch:
    status: MatchStatus
    team_id: str | None = None
    score: int = 0
    candidates: tuple[str, ...] = ()


@dataclass
class SeriesTeamMatch:
    sides: dict[TeamSide, TeamMatch] = field(default_factory=dict)
    conflict: bool = False

    @property
    def resolved(self) -> bool:
        return not self.conflict and all(
            match.status is MatchStatus.MATCHED for match in self.sides.values()
        )

    def team_id(self, side: TeamSide) -> str | None:
        match = self.sides.get(side)
        return match.team_id if match else None


def _declared_hit(gamertag: str, declared: Iterable[str]) -> bool:
    for entry in declared:
        entry = entry.strip().lower()
        if entry and (entry == gamertag or entry in gamertag or gamertag in entry):
            return True
    return False


def roster_score(roster: Iterable[str], team: TeamRoster) -> int:
    """Count roster gamertags the team has played with or declared."""

    score = 0
    for gamertag in roster:
        key = gamertag.strip().lower()
        if not key:
            continue
        if key in team.historical_gamertags or _declared_hit(key, team.declared_gamertags):
            score += 1
    return score


def match_team(roster: Iterable[str], candidates: Iterable[TeamRoster]) -> TeamMatch:
    """Pick the league team with the highest non-zero roster score."""

    roster = list(roster)
    scored = [(roster_score(roster, team), team) for team in candidates]
    best = max((score for score, _team in scored), default=0)
    if best < MIN_MATCH_SCORE:
        return TeamMatch(status=MatchStatus.UNMATCHED)

    leaders = tuple(team.team_id for score, team in scored if score == best)
    if len(leaders) > 1:
        return TeamMatch(status=MatchStatus.TIED, score=best, candidates=leaders)
    return TeamMatch(status=MatchStatus.MATCHED, team_id=leaders[0], score=best, candidates=leaders)


def match_series_teams(series: ResolvedSeries, candidates: list[TeamRoster]) -> SeriesTeamMatch:
    result = SeriesTeamMatch()
    for side in (TeamSide.A, TeamSide.B):
        result.sides[side] = match_team(series.roster(side), candidates)

    team_a = result.team_id(TeamSide.A)
    if team_a is not None and team_a == result.team_id(TeamSide.B):
        result.conflict = True
        logger.warning("Both sides matched the same team_id=%s", team_a)

    for side, match in result.sides.items():
        logger.info(
            "Side %s -> status=%s team_id=%s score=%s",
            side.value,
            match.status.value,
            match.team_id,
            match.score,
        )
    return result


def load_division_rosters(db: Session, division_id: int) -> list[TeamRoster]:
    """Build match candidates from declared rosters and past player stats."""

    teams = (
        db.query(Team)
        .filter(Team.division_id == division_id)
        .order_by(Team.name.asc())
        .all()
    )
    team_ids = [team.id for team in teams]
    history: dict[str, set[str]] = {team_id: set() for team_id in team_ids}
    if team_ids:
        rows = (
            db.query(PlayerGameStatRow.team_id, PlayerGameStatRow.gamertag)
            .filter(PlayerGameStatRow.team_id.in_(team_ids))
            .distinct()
            .all()
        )
        for team_id, gamertag in rows:
            history[team_id].add(gamertag.lower())

    return [
        TeamRoster(
            team_id=team.id,
            name=team.name,
            declared_gamertags=tuple(player.gamertag for player in team.players),
            historical_gamertags=frozenset(history[team.id]),
        )
        for team in teams
    ]
