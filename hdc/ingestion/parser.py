"""Parser for raw per-game stat exports (delimited text or spreadsheet rows)."""

from __future__ import annotations

import csv
import enum
import io
import logging
import re
import zipfile
from datetime import time, timedelta
from typing import Any, Callable, Iterable, Mapping

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from hdc.ingestion.schema import GameRecord, PlayerGameStat

logger = logging.getLogger(__name__)

RANKED_MAP_SUFFIX = " - Ranked"

# canonical column -> accepted header spellings (already normalized)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "game_id": ("matchid", "gameid", "game"),
    "player": ("player", "gamertag", "name", "playername"),
    "team": ("team", "teamname", "teamlabel"),
    "outcome": ("outcome", "result"),
    "map": ("map", "mapname"),
    "mode": ("category", "mode", "variant", "gametype", "gamemode"),
    "length_seconds": ("lengthseconds", "durationseconds"),
    "duration": ("duration", "length"),
    "score": ("teamscore", "score"),
    "kills": ("kills",),
    "deaths": ("deaths",),
    "assists": ("assists",),
    "damage_dealt": ("damagedone", "damage", "damagedealt"),
    "damage_taken": ("damagetaken",),
    "shots_fired": ("shotsfired",),
    "shots_landed": ("shotslanded", "shotshit"),
}

REQUIRED_COLUMNS = ("player", "outcome", "map", "mode", "score", "kills", "deaths", "assists", "damage_dealt")

_WIN_OUTCOMES = {"win", "won", "victory"}
_LOSS_OUTCOMES = {"loss", "lose", "lost", "defeat"}


class ParseError(ValueError):
    pass


class ExportFormat(str, enum.Enum):
    DELIMITED = "delimited"
    TABULAR = "tabular"


def _normalize_header(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"[\s_\-]+", "", str(value).strip().strip('"')).lower()


def _resolve_columns(headers: Iterable[Any]) -> dict[str, str]:
    """Map canonical column names onto the raw headers present in the export."""

    by_normalized: dict[str, str] = {}
    for header in headers:
        normalized = _normalize_header(header)
        if normalized and normalized not in by_normalized:
            by_normalized[normalized] = str(header)

    resolved: dict[str, str] = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_normalized:
                resolved[canonical] = by_normalized[alias]
                break
    return resolved


def _check_required(columns: Mapping[str, str]) -> None:
    missing = [name for name in REQUIRED_COLUMNS if name not in columns]
    if "length_seconds" not in columns and "duration" not in columns:
        missing.append("duration")
    if missing:
        raise ParseError(f"export is missing required columns: {', '.join(missing)}")


def _safe_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    cleaned = str(value).strip().replace(",", "")
    try:
        return max(int(float(cleaned)), 0)
    except ValueError:
        return 0


def parse_duration_seconds(value: Any) -> int:
    """Parse ``M:SS``, ``H:MM:SS``, plain seconds or spreadsheet time cells."""

    if value is None:
        return 0
    if isinstance(value, timedelta):
        return max(int(value.total_seconds()), 0)
    if isinstance(value, time):
        return value.hour * 3600 + value.minute * 60 + value.second
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return max(int(value), 0)
    parts = str(value).strip().split(":")
    try:
        numbers = [int(float(part)) for part in parts]
    except ValueError:
        return 0
    if len(numbers) == 1:
        return max(numbers[0], 0)
    if len(numbers) == 2:
        return max(numbers[0] * 60 + numbers[1], 0)
    if len(numbers) == 3:
        return max(numbers[0] * 3600 + numbers[1] * 60 + numbers[2], 0)
    return 0


def _cell(row: Mapping[str, Any], columns: Mapping[str, str], name: str) -> Any:
    header = columns.get(name)
    if header is None:
        return None
    return row.get(header)


def _text(row: Mapping[str, Any], columns: Mapping[str, str], name: str) -> str:
    value = _cell(row, columns, name)
    if value is None:
        return ""
    return str(value).strip()


def _clean_map_name(raw: str) -> str:
    if raw.endswith(RANKED_MAP_SUFFIX):
        raw = raw[: -len(RANKED_MAP_SUFFIX)]
    return raw.strip() or "Unknown"


def _player_stat(row: Mapping[str, Any], columns: Mapping[str, str], won: bool) -> PlayerGameStat:
    return PlayerGameStat(
        gamertag=_text(row, columns, "player"),
        won=won,
        kills=_safe_int(_cell(row, columns, "kills")),
        deaths=_safe_int(_cell(row, columns, "deaths")),
        assists=_safe_int(_cell(row, columns, "assists")),
        damage_dealt=_safe_int(_cell(row, columns, "damage_dealt")),
        damage_taken=_safe_int(_cell(row, columns, "damage_taken")),
        shots_fired=_safe_int(_cell(row, columns, "shots_fired")),
        shots_landed=_safe_int(_cell(row, columns, "shots_landed")),
    )


def _build_game(
    game_id: str,
    series_id: str,
    rows: list[Mapping[str, Any]],
    columns: Mapping[str, str],
) -> GameRecord | None:
    winners: list[Mapping[str, Any]] = []
    losers: list[Mapping[str, Any]] = []
    seen: set[str] = set()
    for row in rows:
        gamertag = _text(row, columns, "player")
        if not gamertag or gamertag.lower() in seen:
            continue
        outcome = _text(row, columns, "outcome").lower()
        if outcome in _WIN_OUTCOMES:
            winners.append(row)
        elif outcome in _LOSS_OUTCOMES:
            losers.append(row)
        else:
            continue
        seen.add(gamertag.lower())

    if not winners or not losers:
        return None

    first = rows[0]
    if "length_seconds" in columns:
        duration_seconds = _safe_int(_cell(first, columns, "length_seconds"))
    else:
        duration_seconds = parse_duration_seconds(_cell(first, columns, "duration"))

    team_labels: dict[str, str] = {}
    if "team" in columns:
        for row in winners + losers:
            label = _text(row, columns, "team")
            if label:
                team_labels[_text(row, columns, "player").lower()] = label

    return GameRecord(
        game_id=game_id,
        series_id=series_id,
        map=_clean_map_name(_text(first, columns, "map")),
        mode=_text(first, columns, "mode") or "Unknown",
        duration_seconds=duration_seconds,
        winner_score=_safe_int(_cell(winners[0], columns, "score")),
        loser_score=_safe_int(_cell(losers[0], columns, "score")),
        winning_gamertags=[_text(row, columns, "player") for row in winners],
        losing_gamertags=[_text(row, columns, "player") for row in losers],
        players=[_player_stat(row, columns, True) for row in winners]
        + [_player_stat(row, columns, False) for row in losers],
        team_labels=team_labels,
    )


def parse_rows(
    rows: Iterable[Mapping[str, Any]],
    *,
    game_id: str = "game-1",
    series_id: str = "",
    id_prefix: str = "",
    on_dropped: Callable[[str], None] | None = None,
) -> list[GameRecord]:
    """Parse tabular rows keyed by column name into GameRecords, in file order.

    Ids read from a game-id column get ``id_prefix`` prepended, so ordinal
    ids like ``1`` from separate uploads stay distinct. ``on_dropped`` is
    called with the id of every game that lacks a winning or losing roster.
    """

    materialized = [row for row in rows if any(value not in (None, "") for value in row.values())]
    if not materialized:
        raise ParseError("export has no data rows")

    headers: list[str] = []
    for row in materialized:
        for header in row.keys():
            if header not in headers:
                headers.append(header)
    columns = _resolve_columns(headers)
    _check_required(columns)

    groups: dict[str, list[Mapping[str, Any]]] = {}
    for row in materialized:
        key = _text(row, columns, "game_id") if "game_id" in columns else ""
        groups.setdefault(f"{id_prefix}{key}" if key else game_id, []).append(row)

    games: list[GameRecord] = []
    dropped = 0
    for key, group_rows in groups.items():
        game = _build_game(key, series_id, group_rows, columns)
        if game is None:
            dropped += 1
            if on_dropped is not None:
                on_dropped(key)
            continue
        games.append(game)

    if dropped:
        logger.warning(
            "Dropped %s game(s) without both a winning and a losing roster (series=%s)",
            dropped,
            series_id or "-",
        )
    return games


def _decode(raw: bytes | str) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def parse_delimited(
    raw: bytes | str,
    *,
    delimiter: str = ",",
    game_id: str = "game-1",
    series_id: str = "",
    id_prefix: str = "",
    on_dropped: Callable[[str], None] | None = None,
) -> list[GameRecord]:
    """Parse a delimited export with a header row.

    Quoted fields may contain the delimiter; a doubled quote inside a quoted
    field is a literal quote.
    """

    reader = csv.reader(io.StringIO(_decode(raw)), delimiter=delimiter)
    try:
        lines = [
            [value.strip() for value in line]
            for line in reader
            if any(value.strip() for value in line)
        ]
    except csv.Error as exc:
        raise ParseError(f"malformed delimited export: {exc}") from exc
    if len(lines) < 2:
        raise ParseError("export has no data rows")

    headers = [header.strip('"') for header in lines[0]]
    rows = [
        {header: (line[index] if index < len(line) else "") for index, header in enumerate(headers)}
        for line in lines[1:]
    ]
    return parse_rows(rows, game_id=game_id, series_id=series_id, id_prefix=id_prefix, on_dropped=on_dropped)


def parse_workbook(
    raw: bytes,
    *,
    sheet_name: str | None = None,
    game_id: str = "game-1",
    series_id: str = "",
    id_prefix: str = "",
    on_dropped: Callable[[str], None] | None = None,
) -> list[GameRecord]:
    """Parse the first (or named) worksheet of an xlsx export."""

    try:
        workbook = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ParseError(f"unreadable workbook: {exc}") from exc

    try:
        if sheet_name is not None:
            if sheet_name not in workbook.sheetnames:
                raise ParseError(f"workbook has no sheet named {sheet_name!r}")
            sheet = workbook[sheet_name]
        else:
            sheet = workbook.worksheets[0]

        values = list(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()

    if len(values) < 2:
        raise ParseError("export has no data rows")
    headers = ["" if header is None else str(header).strip() for header in values[0]]
    rows = [
        {header: (line[index] if index < len(line) else None) for index, header in enumerate(headers) if header}
        for line in values[1:]
    ]
    return parse_rows(rows, game_id=game_id, series_id=series_id, id_prefix=id_prefix, on_dropped=on_dropped)


def parse_export(
    raw: bytes,
    fmt: ExportFormat | str = ExportFormat.DELIMITED,
    *,
    game_id: str = "game-1",
    series_id: str = "",
    id_prefix: str = "",
    on_dropped: Callable[[str], None] | None = None,
) -> list[GameRecord]:
    """Parse one raw export into GameRecords according to a format hint."""

    export_format = ExportFormat(fmt)
    options = dict(game_id=game_id, series_id=series_id, id_prefix=id_prefix, on_dropped=on_dropped)
    if export_format is ExportFormat.TABULAR:
        return parse_workbook(raw, **options)
    return parse_delimited(raw, **options)
