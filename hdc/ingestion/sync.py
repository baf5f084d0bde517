"""Ingest a series from the stat service into the local database."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from hdc.divisions import get_division_name, is_valid_week
from hdc.ingestion.leaf_client import (
    LeafClientError,
    build_game_export_url,
    extract_series_id,
    fetch_export,
    list_game_identifiers,
)
from hdc.ingestion.merger import MergeReport, merge_split_games
from hdc.ingestion.parser import ExportFormat, parse_export
from hdc.ingestion.resolver import ResolvedSeries, resolve_sides
from hdc.ingestion.schema import GameRecord, MergedSeriesGame, SeriesResult, TeamSide
from hdc.ingestion.team_matcher import (
    MatchStatus,
    SeriesTeamMatch,
    TeamMatch,
    TeamRoster,
    load_division_rosters,
    match_series_teams,
)
from hdc.models import Game, Match
from hdc.models import PlayerGameStat as PlayerGameStatRow
from hdc.settings import LeagueSettings

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], bytes]
GameLister = Callable[[str], list[str]]


class SeriesIngestError(RuntimeError):
    pass


class NoGamesFoundError(SeriesIngestError):
    pass


class SeriesAlreadyImportedError(SeriesIngestError):
    pass


class UnmatchedTeamError(SeriesIngestError):
    def __init__(self, message: str, matches: SeriesTeamMatch, resolved: ResolvedSeries) -> None:
        super().__init__(message)
        self.matches = matches
        self.resolved = resolved


@dataclass(frozen=True)
class SkippedGame:
    game_id: str
    reason: str


@dataclass
class CollectResult:
    total: int = 0
    records: list[GameRecord] = field(default_factory=list)
    skipped: list[SkippedGame] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.total - len(self.skipped)


@dataclass
class SeriesBuild:
    series_id: str
    merge: MergeReport
    resolved: ResolvedSeries
    teams: SeriesTeamMatch
    result: SeriesResult


@dataclass
class IngestResult:
    series_id: str
    total_games: int
    processed_games: int
    skipped: list[SkippedGame]
    build: SeriesBuild
    match_id: int

    @property
    def summary(self) -> str:
        return f"{self.processed_games} of {self.total_games} games processed"


def _fetch_and_parse(game_id: str, series_id: str, fetch: Fetcher, url_for: Callable[[str], str]) -> list[GameRecord]:
    raw = fetch(url_for(game_id))
    return parse_export(raw, ExportFormat.DELIMITED, game_id=game_id, series_id=series_id)


async def collect_series_games(
    game_ids: list[str],
    fetch: Fetcher,
    url_for: Callable[[str], str],
    *,
    series_id: str,
    concurrency: int,
) -> CollectResult:
    """Fetch and parse every game concurrently; failures are skipped, not fatal."""

    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def _one(game_id: str) -> list[GameRecord] | SkippedGame:
        async with semaphore:
            try:
                return await asyncio.to_thread(_fetch_and_parse, game_id, series_id, fetch, url_for)
            except (LeafClientError, ValueError) as exc:
                logger.error("Skipping game=%s series=%s: %s", game_id, series_id, exc)
                return SkippedGame(game_id=game_id, reason=str(exc))

    outcomes = await asyncio.gather(*(_one(game_id) for game_id in game_ids))

    result = CollectResult(total=len(game_ids))
    for game_id, outcome in zip(game_ids, outcomes):
        if isinstance(outcome, SkippedGame):
            result.skipped.append(outcome)
        elif not outcome:
            result.skipped.append(SkippedGame(game_id=game_id, reason="no complete game in export"))
        else:
            result.records.extend(outcome)
    logger.info(
        "Collected series=%s games=%s processed=%s skipped=%s",
        series_id,
        result.total,
        result.processed,
        len(result.skipped),
    )
    return result


def _override(match: TeamMatch, team_id: str | None) -> TeamMatch:
    if team_id is None:
        return match
    return TeamMatch(status=MatchStatus.MATCHED, team_id=team_id, score=match.score, candidates=(team_id,))


def build_series(
    records: Iterable[GameRecord],
    candidates: list[TeamRoster],
    *,
    series_id: str,
    team0_id: str | None = None,
    team1_id: str | None = None,
) -> SeriesBuild:
    """Merge fragments, assign sides and league teams. Touches no storage.

    ``team0_id``/``team1_id`` are manual selections for side A/B and replace
    the roster match for that side.
    """

    merge = merge_split_games(records)
    if not merge.games:
        raise NoGamesFoundError(f"No valid games found for series {series_id}")

    resolved = resolve_sides(merge.games)
    teams = match_series_teams(resolved, candidates)
    teams.sides[TeamSide.A] = _override(teams.sides[TeamSide.A], team0_id)
    teams.sides[TeamSide.B] = _override(teams.sides[TeamSide.B], team1_id)
    teams.conflict = teams.team_id(TeamSide.A) is not None and teams.team_id(TeamSide.A) == teams.team_id(
        TeamSide.B
    )

    if not teams.resolved:
        details = ", ".join(
            f"side {side.value}={match.status.value}" for side, match in teams.sides.items()
        )
        if teams.conflict:
            details += ", both sides matched the same team"
        raise UnmatchedTeamError(
            f"Could not match league teams for series {series_id} ({details})",
            teams,
            resolved,
        )

    result = SeriesResult(
        series_id=series_id,
        team0_id=teams.team_id(TeamSide.A),
        team1_id=teams.team_id(TeamSide.B),
        team0_wins=resolved.side_a_wins,
        team1_wins=resolved.side_b_wins,
        games=resolved.games,
    )
    return SeriesBuild(series_id=series_id, merge=merge, resolved=resolved, teams=teams, result=result)


def _insert_game(db: Session, match: Match, number: int, game: MergedSeriesGame, team_for: dict[TeamSide, str]) -> None:
    team_a_is_team1 = team_for[TeamSide.A] == match.team1_id
    row = Game(
        match_id=match.id,
        number=number,
        mode=game.mode,
        map=game.map,
        score_a=game.team_a_score if team_a_is_team1 else game.team_b_score,
        score_b=game.team_b_score if team_a_is_team1 else game.team_a_score,
        winner_team_id=team_for[TeamSide.A] if game.team_a_won else team_for[TeamSide.B],
        duration_seconds=game.duration_seconds,
        source_game_id=game.game_id,
    )
    db.add(row)
    db.flush()

    for player in game.players:
        side = game.side_of(player.gamertag) or (TeamSide.A if player.won == game.team_a_won else TeamSide.B)
        db.add(
            PlayerGameStatRow(
                game_id=row.id,
                match_id=match.id,
                team_id=team_for[side],
                gamertag=player.gamertag,
                kills=player.kills,
                deaths=player.deaths,
                assists=player.assists,
                damage=player.damage_dealt,
                damage_taken=player.damage_taken,
                shots_fired=player.shots_fired,
                shots_landed=player.shots_landed,
            )
        )


def persist_series(db: Session, build: SeriesBuild, *, division_id: int, week: int) -> Match:
    """Store one built series as match + games + player stats in one transaction."""

    result = build.result
    game_ids = [game.game_id for game in result.games]
    existing = db.query(Game.source_game_id).filter(Game.source_game_id.in_(game_ids)).first()
    if existing is not None:
        raise SeriesAlreadyImportedError(
            f"Series {build.series_id} already imported (game {existing[0]})"
        )

    team_for = {TeamSide.A: result.team0_id, TeamSide.B: result.team1_id}
    wins = {result.team0_id: result.team0_wins, result.team1_id: result.team1_wins}
    team1_id, team2_id = sorted((result.team0_id, result.team1_id))

    try:
        match = Match(
            division_id=division_id,
            week=week,
            team1_id=team1_id,
            team2_id=team2_id,
            team1_maps=wins[team1_id],
            team2_maps=wins[team2_id],
            admin_approved=False,
            source_series_id=build.series_id,
        )
        db.add(match)
        db.flush()
        for number, game in enumerate(result.games, start=1):
            _insert_game(db, match, number, game, team_for)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed persisting series=%s", build.series_id)
        raise

    logger.info(
        "Persisted series=%s match_id=%s %s-%s games=%s",
        build.series_id,
        match.id,
        match.team1_maps,
        match.team2_maps,
        len(result.games),
    )
    return match


def _check_fixture(division_id: int, week: int) -> None:
    if get_division_name(division_id) is None:
        raise SeriesIngestError(f"Unknown division: {division_id}")
    if not is_valid_week(week):
        raise SeriesIngestError(f"Week out of range: {week}")


async def ingest_series(
    db: Session,
    series_url: str,
    *,
    division_id: int,
    week: int,
    settings: LeagueSettings,
    team0_id: str | None = None,
    team1_id: str | None = None,
    fetch: Fetcher | None = None,
    list_games: GameLister | None = None,
) -> IngestResult:
    """Scrape, parse, merge, resolve and persist one series."""

    _check_fixture(division_id, week)
    series_id = extract_series_id(series_url)
    fetch = fetch or partial(fetch_export, settings=settings)
    list_games = list_games or partial(list_game_identifiers, settings=settings)

    try:
        game_ids = await asyncio.to_thread(list_games, series_url)
    except LeafClientError as exc:
        raise SeriesIngestError(f"Failed to fetch series page: {exc}") from exc
    if not game_ids:
        raise NoGamesFoundError(f"No games found in series {series_id}")

    collected = await collect_series_games(
        game_ids,
        fetch,
        partial(build_game_export_url, settings),
        series_id=series_id,
        concurrency=settings.ingest_concurrency,
    )
    if not collected.records:
        raise NoGamesFoundError(f"Failed to parse any game data for series {series_id}")

    candidates = await asyncio.to_thread(load_division_rosters, db, division_id)
    build = build_series(
        collected.records,
        candidates,
        series_id=series_id,
        team0_id=team0_id,
        team1_id=team1_id,
    )
    match = await asyncio.to_thread(persist_series, db, build, division_id=division_id, week=week)
    return IngestResult(
        series_id=series_id,
        total_games=collected.total,
        processed_games=collected.processed,
        skipped=collected.skipped,
        build=build,
        match_id=match.id,
    )


def ingest_export(
    db: Session,
    raw: bytes,
    fmt: ExportFormat | str,
    *,
    series_id: str,
    division_id: int,
    week: int,
    team0_id: str | None = None,
    team1_id: str | None = None,
) -> IngestResult:
    """Ingest one uploaded export file holding every game of a series.

    Game ids from the file are scoped to ``series_id``; uploads commonly
    number their games from 1.
    """

    _check_fixture(division_id, week)
    skipped: list[SkippedGame] = []
    records = parse_export(
        raw,
        fmt,
        game_id=f"{series_id}-1",
        series_id=series_id,
        id_prefix=f"{series_id}:",
        on_dropped=lambda game_id: skipped.append(
            SkippedGame(game_id=game_id, reason="no complete game in export")
        ),
    )
    if not records:
        raise NoGamesFoundError(f"No complete games in export for series {series_id}")

    candidates = load_division_rosters(db, division_id)
    build = build_series(records, candidates, series_id=series_id, team0_id=team0_id, team1_id=team1_id)
    match = persist_series(db, build, division_id=division_id, week=week)
    return IngestResult(
        series_id=series_id,
        total_games=len(records) + len(skipped),
        processed_games=len(records),
        skipped=skipped,
        build=build,
        match_id=match.id,
    )
