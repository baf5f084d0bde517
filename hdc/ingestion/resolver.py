"""Assign series-scoped A/B sides to the games of one series."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from hdc.ingestion.schema import GameRecord, MergedSeriesGame, TeamSide

logger = logging.getLogger(__name__)

MIN_ROSTER_OVERLAP = 1


@dataclass(frozen=True)
class DataQualityFlag:
    game_id: str
    message: str


@dataclass
class ResolvedSeries:
    games: list[MergedSeriesGame] = field(default_factory=list)
    side_a_gamertags: list[str] = field(default_factory=list)
    side_b_gamertags: list[str] = field(default_factory=list)
    flags: list[DataQualityFlag] = field(default_factory=list)

    @property
    def side_a_wins(self) -> int:
        return sum(1 for game in self.games if game.team_a_won)

    @property
    def side_b_wins(self) -> int:
        return sum(1 for game in self.games if not game.team_a_won)

    def roster(self, side: TeamSide) -> list[str]:
        return self.side_a_gamertags if side is TeamSide.A else self.side_b_gamertags


def _lowered(gamertags: list[str]) -> set[str]:
    return {tag.lower() for tag in gamertags}


def _label_of(game: GameRecord, gamertags: list[str]) -> str | None:
    """Most common raw team label among the given players, if labels exist."""

    counts: dict[str, int] = {}
    for tag in gamertags:
        label = game.team_labels.get(tag.lower())
        if label:
            counts[label.lower()] = counts.get(label.lower(), 0) + 1
    if not counts:
        return None
    return max(counts, key=lambda label: counts[label])


def _side_a_won(
    game: GameRecord,
    anchor_label: str | None,
    side_a: set[str],
    flags: list[DataQualityFlag],
) -> bool:
    if anchor_label is not None:
        winner_label = _label_of(game, game.winning_gamertags)
        loser_label = _label_of(game, game.losing_gamertags)
        if winner_label == anchor_label:
            return True
        if loser_label == anchor_label:
            return False

    if len(_lowered(game.winning_gamertags) & side_a) >= MIN_ROSTER_OVERLAP:
        return True
    if len(_lowered(game.losing_gamertags) & side_a) >= MIN_ROSTER_OVERLAP:
        return False

    message = "neither roster overlaps side A; assumed the winners are side A"
    flags.append(DataQualityFlag(game_id=game.game_id, message=message))
    logger.warning("Side resolution fallback game=%s: %s", game.game_id, message)
    return True


def resolve_sides(games: list[GameRecord]) -> ResolvedSeries:
    """Anchor every game of a series on one A/B axis.

    Side A is the winning roster of the first game. A later game counts as a
    side A win when its winners carry side A's in-game label (spreadsheet
    exports) or share a gamertag with side A's first-game roster.
    """

    resolved = ResolvedSeries()
    if not games:
        return resolved

    first = games[0]
    side_a = _lowered(first.winning_gamertags)
    anchor_label = _label_of(first, first.winning_gamertags)
    seen: dict[TeamSide, set[str]] = {TeamSide.A: set(), TeamSide.B: set()}

    for game in games:
        team_a_won = _side_a_won(game, anchor_label, side_a, resolved.flags)
        winner_side = TeamSide.A if team_a_won else TeamSide.B

        player_sides: dict[str, TeamSide] = {}
        for tag in game.winning_gamertags:
            player_sides[tag.lower()] = winner_side
        for tag in game.losing_gamertags:
            player_sides[tag.lower()] = winner_side.other

        for tag in game.winning_gamertags + game.losing_gamertags:
            side = player_sides[tag.lower()]
            if tag.lower() not in seen[side]:
                seen[side].add(tag.lower())
                resolved.roster(side).append(tag)

        resolved.games.append(
            MergedSeriesGame(
                **game.model_dump(),
                team_a_won=team_a_won,
                player_sides=player_sides,
            )
        )

    crossed = seen[TeamSide.A] & seen[TeamSide.B]
    if crossed:
        message = f"gamertags appear on both sides across the series: {', '.join(sorted(crossed))}"
        resolved.flags.append(DataQualityFlag(game_id=first.series_id or first.game_id, message=message))
        logger.warning("Side resolution: %s", message)

    logger.info(
        "Resolved %s games: side_a_wins=%s side_b_wins=%s flags=%s",
        len(resolved.games),
        resolved.side_a_wins,
        resolved.side_b_wins,
        len(resolved.flags),
    )
    return resolved
