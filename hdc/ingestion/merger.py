"""Detect and merge game fragments split by disconnects or restarts.

The stat service emits one record per network session, so a game that was
interrupted shows up as two (or more) partial records sharing the same map and
mode. Records are grouped per (map, mode) key and each group is resolved with
a mode-specific policy:

* Slayer: a record with at least ``SLAYER_COMPLETE_KILLS`` combined kills is a
  complete game. When no single record gets there but the group total falls
  within ``[SLAYER_COMPLETE_KILLS, SLAYER_MAX_MERGED_KILLS]`` the group is one
  game and gets summed.
* Oddball: a side reaching ``ODDBALL_ROUNDS_TO_WIN`` rounds completes a game;
  incomplete records are summed together.
* Other objective modes: 0-0 restarts are dropped; two low-kill records
  (average below ``OBJECTIVE_TRUNCATED_AVG_KILLS``) are summed.

Records that are 0-0 with no kills at all are removed in every mode.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable

from hdc.ingestion.schema import GameRecord, PlayerGameStat

logger = logging.getLogger(__name__)

SLAYER_COMPLETE_KILLS = 45
SLAYER_MAX_MERGED_KILLS = 110
ODDBALL_ROUNDS_TO_WIN = 2
OBJECTIVE_TRUNCATED_AVG_KILLS = 30
MERGED_ID_SEPARATOR = "_merged_"

_COUNTING_STATS = (
    "kills",
    "deaths",
    "assists",
    "damage_dealt",
    "damage_taken",
    "shots_fired",
    "shots_landed",
)


class ModeFamily(str, enum.Enum):
    SLAYER = "slayer"
    ODDBALL = "oddball"
    OBJECTIVE = "objective"


class MergeDecision(str, enum.Enum):
    KEPT = "kept"
    MERGED = "merged"
    DISCARDED = "discarded"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class MergeNote:
    map: str
    mode: str
    decision: MergeDecision
    source_game_ids: tuple[str, ...]
    reason: str


@dataclass
class MergeReport:
    games: list[GameRecord] = field(default_factory=list)
    notes: list[MergeNote] = field(default_factory=list)

    @property
    def ambiguous(self) -> list[MergeNote]:
        return [note for note in self.notes if note.decision is MergeDecision.AMBIGUOUS]

    def count(self, decision: MergeDecision) -> int:
        return sum(1 for note in self.notes if note.decision is decision)


def mode_family(mode: str) -> ModeFamily:
    lowered = mode.lower()
    if "slayer" in lowered:
        return ModeFamily.SLAYER
    if "oddball" in lowered:
        return ModeFamily.ODDBALL
    return ModeFamily.OBJECTIVE


def _lower_set(gamertags: Iterable[str]) -> set[str]:
    return {tag.lower() for tag in gamertags}


def _overlap(left: Iterable[str], right: Iterable[str]) -> int:
    return len(_lower_set(left) & _lower_set(right))


def _winners_are_base_losers(fragment: GameRecord, base: GameRecord) -> bool:
    """True when this fragment's winning roster is the base fragment's losing roster."""

    same = _overlap(fragment.winning_gamertags, base.winning_gamertags) + _overlap(
        fragment.losing_gamertags, base.losing_gamertags
    )
    swapped = _overlap(fragment.winning_gamertags, base.losing_gamertags) + _overlap(
        fragment.losing_gamertags, base.winning_gamertags
    )
    return swapped > same


def merge_fragments(fragments: list[GameRecord]) -> GameRecord:
    """Sum two or more fragments of one game into a single record.

    Sides are oriented on the first fragment: its winners are the "base" side.
    The base side keeps the win unless the recomputed totals favour the other
    side (kills for slayer, summed scores otherwise, kills break a score tie).
    """

    if not fragments:
        raise ValueError("merge_fragments needs at least one fragment")
    base = fragments[0]
    is_slayer = mode_family(base.mode) is ModeFamily.SLAYER

    totals: dict[str, dict[str, int]] = {}
    display: dict[str, str] = {}
    on_base_side: dict[str, bool] = {}
    base_score = 0
    other_score = 0

    for fragment in fragments:
        flipped = _winners_are_base_losers(fragment, base)
        if flipped:
            base_score += fragment.loser_score
            other_score += fragment.winner_score
        else:
            base_score += fragment.winner_score
            other_score += fragment.loser_score

        for player in fragment.players:
            key = player.gamertag.lower()
            if key not in totals:
                totals[key] = {name: 0 for name in _COUNTING_STATS}
                display[key] = player.gamertag
                on_base_side[key] = player.won != flipped
            for name in _COUNTING_STATS:
                totals[key][name] += getattr(player, name)

    base_kills = sum(totals[key]["kills"] for key in totals if on_base_side[key])
    other_kills = sum(totals[key]["kills"] for key in totals if not on_base_side[key])

    if is_slayer:
        base_score, other_score = base_kills, other_kills
        base_wins = base_kills >= other_kills
    elif base_score != other_score:
        base_wins = base_score > other_score
    else:
        base_wins = base_kills >= other_kills

    base_tags = [display[key] for key in totals if on_base_side[key]]
    other_tags = [display[key] for key in totals if not on_base_side[key]]
    players = [
        PlayerGameStat(
            gamertag=display[key],
            won=on_base_side[key] == base_wins,
            **stats,
        )
        for key, stats in totals.items()
    ]

    source_ids: list[str] = []
    for fragment in fragments:
        source_ids.extend(fragment.source_game_ids)

    labels: dict[str, str] = {}
    for fragment in fragments:
        for key, label in fragment.team_labels.items():
            labels.setdefault(key, label)

    return GameRecord(
        game_id=MERGED_ID_SEPARATOR.join(fragment.game_id for fragment in fragments),
        series_id=base.series_id,
        map=base.map,
        mode=base.mode,
        duration_seconds=sum(fragment.duration_seconds for fragment in fragments),
        winner_score=base_score if base_wins else other_score,
        loser_score=other_score if base_wins else base_score,
        winning_gamertags=base_tags if base_wins else other_tags,
        losing_gamertags=other_tags if base_wins else base_tags,
        players=players,
        source_game_ids=source_ids,
        team_labels=labels,
    )


def _ids(records: Iterable[GameRecord]) -> tuple[str, ...]:
    return tuple(record.game_id for record in records)


class _GroupResolver:
    def __init__(self, records: list[GameRecord], report: MergeReport) -> None:
        self.records = records
        self.report = report
        self.map = records[0].map
        self.mode = records[0].mode

    def note(self, decision: MergeDecision, records: Iterable[GameRecord], reason: str) -> None:
        self.report.notes.append(
            MergeNote(
                map=self.map,
                mode=self.mode,
                decision=decision,
                source_game_ids=_ids(records),
                reason=reason,
            )
        )

    def keep(self, records: list[GameRecord], reason: str) -> None:
        if not records:
            return
        self.report.games.extend(records)
        self.note(MergeDecision.KEPT, records, reason)

    def merge(self, records: list[GameRecord], reason: str, *, ambiguous: bool = False) -> None:
        merged = merge_fragments(records)
        self.report.games.append(merged)
        self.note(MergeDecision.AMBIGUOUS if ambiguous else MergeDecision.MERGED, records, reason)

    def discard(self, records: list[GameRecord], reason: str) -> None:
        if records:
            self.note(MergeDecision.DISCARDED, records, reason)

    def resolve(self) -> None:
        if len(self.records) == 1:
            self.keep(self.records, "only record for this map and mode")
            return
        family = mode_family(self.mode)
        if family is ModeFamily.SLAYER:
            self._resolve_slayer()
        elif family is ModeFamily.ODDBALL:
            self._resolve_oddball()
        else:
            self._resolve_objective()

    def _resolve_slayer(self) -> None:
        complete = [record for record in self.records if record.total_kills >= SLAYER_COMPLETE_KILLS]
        if complete:
            self.keep(complete, f"reached {SLAYER_COMPLETE_KILLS} combined kills")
            self.discard(
                [record for record in self.records if record.total_kills < SLAYER_COMPLETE_KILLS],
                "incomplete fragment next to a complete game",
            )
            return

        total = sum(record.total_kills for record in self.records)
        if SLAYER_COMPLETE_KILLS <= total <= SLAYER_MAX_MERGED_KILLS:
            self.merge(self.records, f"fragments sum to {total} kills")
            return

        self.report.games.extend(self.records)
        self.note(
            MergeDecision.AMBIGUOUS,
            self.records,
            f"fragments sum to {total} kills, outside "
            f"[{SLAYER_COMPLETE_KILLS}, {SLAYER_MAX_MERGED_KILLS}]; kept unmerged",
        )
        logger.warning(
            "Ambiguous slayer fragments map=%s mode=%s games=%s total_kills=%s; kept unmerged",
            self.map,
            self.mode,
            ",".join(_ids(self.records)),
            total,
        )

    def _resolve_oddball(self) -> None:
        complete: list[GameRecord] = []
        incomplete: list[GameRecord] = []
        restarts: list[GameRecord] = []
        for record in self.records:
            if record.winner_score >= ODDBALL_ROUNDS_TO_WIN or record.loser_score >= ODDBALL_ROUNDS_TO_WIN:
                complete.append(record)
            elif record.winner_score > 0 or record.loser_score > 0:
                incomplete.append(record)
            else:
                restarts.append(record)
        self.keep(complete, f"a side reached {ODDBALL_ROUNDS_TO_WIN} rounds")
        self.discard(restarts, "0-0 restart")

        if len(incomplete) == 1:
            self.keep(incomplete, "lone incomplete record kept as a short game")
        elif len(incomplete) == 2:
            self.merge(incomplete, "two incomplete fragments")
        elif len(incomplete) > 2:
            self.merge(
                incomplete,
                f"{len(incomplete)} incomplete fragments merged into one game",
                ambiguous=True,
            )
            logger.warning(
                "Merged %s incomplete oddball fragments map=%s games=%s into one game",
                len(incomplete),
                self.map,
                ",".join(_ids(incomplete)),
            )

    def _resolve_objective(self) -> None:
        scored: list[GameRecord] = []
        restarts: list[GameRecord] = []
        for record in self.records:
            if record.winner_score > 0 or record.loser_score > 0:
                scored.append(record)
            else:
                restarts.append(record)
        self.discard(restarts, "0-0 restart")

        if len(scored) == 2:
            average = sum(record.total_kills for record in scored) / len(scored)
            if average < OBJECTIVE_TRUNCATED_AVG_KILLS:
                self.merge(scored, f"two truncated records averaging {average:.1f} kills")
                return
        self.keep(scored, "independent objective games")


def merge_split_games(records: Iterable[GameRecord]) -> MergeReport:
    """Resolve every (map, mode) group of a series upload into final games.

    Output games are ordered by the position of their earliest source record,
    and the void filter (0-0, no kills) runs last so it also covers merged
    output.
    """

    positions: dict[str, int] = {}
    groups: dict[tuple[str, str], list[GameRecord]] = {}
    for record in records:
        for source_id in record.source_game_ids:
            positions.setdefault(source_id, len(positions))
        groups.setdefault(record.merge_key, []).append(record)

    report = MergeReport()
    for group in groups.values():
        _GroupResolver(group, report).resolve()

    report.games.sort(
        key=lambda game: min(positions.get(source_id, len(positions)) for source_id in game.source_game_ids)
    )

    void = [game for game in report.games if game.is_void]
    if void:
        report.games = [game for game in report.games if not game.is_void]
        for game in void:
            report.notes.append(
                MergeNote(
                    map=game.map,
                    mode=game.mode,
                    decision=MergeDecision.DISCARDED,
                    source_game_ids=(game.game_id,),
                    reason="0-0 with no kills",
                )
            )
    logger.info(
        "Merge summary: games_out=%s kept=%s merged=%s discarded=%s ambiguous=%s",
        len(report.games),
        report.count(MergeDecision.KEPT),
        report.count(MergeDecision.MERGED),
        report.count(MergeDecision.DISCARDED),
        report.count(MergeDecision.AMBIGUOUS),
    )
    return report
