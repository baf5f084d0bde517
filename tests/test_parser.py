from __future__ import annotations

import io
import unittest
from datetime import time, timedelta

from openpyxl import Workbook

from hdc.ingestion.parser import (
    ExportFormat,
    ParseError,
    parse_delimited,
    parse_duration_seconds,
    parse_export,
)

HEADER = "MatchId,Player,Team,Outcome,Map,Category,LengthSeconds,TeamScore,Kills,Deaths,Assists,DamageDone,ShotsFired,ShotsLanded"


def _csv(*lines: str) -> bytes:
    return "\n".join((HEADER,) + lines).encode("utf-8")


class ParseDelimitedTests(unittest.TestCase):
    def test_quoted_gamertag_with_delimiter_stays_one_field(self) -> None:
        raw = _csv(
            'g1,"Smith, Jr",Eagle,Win,Live Fire - Ranked,Slayer,600,50,30,10,5,3000,200,100',
            "g1,Bob,Eagle,Win,Live Fire - Ranked,Slayer,600,50,20,12,4,2500,180,90",
            "g1,Carl,Cobra,Loss,Live Fire - Ranked,Slayer,600,45,25,25,3,2800,210,95",
            "g1,Dan,Cobra,Loss,Live Fire - Ranked,Slayer,600,45,20,25,6,2100,150,70",
        )

        games = parse_delimited(raw, series_id="77")

        self.assertEqual(1, len(games))
        game = games[0]
        self.assertEqual("g1", game.game_id)
        self.assertEqual("77", game.series_id)
        self.assertEqual(["Smith, Jr", "Bob"], game.winning_gamertags)
        self.assertEqual(["Carl", "Dan"], game.losing_gamertags)
        self.assertEqual("Live Fire", game.map)
        self.assertEqual("Slayer", game.mode)
        self.assertEqual((50, 45), (game.winner_score, game.loser_score))
        self.assertEqual(600, game.duration_seconds)
        self.assertEqual("10:00", game.duration)
        self.assertEqual(95, game.total_kills)
        self.assertEqual("Eagle", game.team_labels["smith, jr"])
        self.assertEqual(["g1"], game.source_game_ids)

    def test_rows_are_grouped_by_game_column_in_file_order(self) -> None:
        raw = _csv(
            "g2,Ann,Eagle,Win,Aquarius,Oddball,300,2,5,3,1,900,40,20",
            "g2,Ben,Cobra,Loss,Aquarius,Oddball,300,1,3,5,0,700,35,12",
            "g1,Ann,Eagle,Loss,Streets,Slayer,500,40,20,25,2,2000,100,50",
            "g1,Ben,Cobra,Win,Streets,Slayer,500,50,25,20,3,2100,110,55",
        )

        games = parse_delimited(raw)

        self.assertEqual(["g2", "g1"], [game.game_id for game in games])
        self.assertEqual(["Ben"], games[1].winning_gamertags)

    def test_game_without_losing_roster_is_dropped(self) -> None:
        raw = _csv(
            "g1,Ann,Eagle,Win,Streets,Slayer,500,50,25,20,3,2100,110,55",
            "g1,Ben,Cobra,Loss,Streets,Slayer,500,40,20,25,2,2000,100,50",
            "g2,Ann,Eagle,Win,Aquarius,Slayer,400,50,30,10,1,2500,120,60",
        )

        games = parse_delimited(raw)

        self.assertEqual(["g1"], [game.game_id for game in games])

    def test_dropped_games_are_reported(self) -> None:
        raw = _csv(
            "g1,Ann,Eagle,Win,Streets,Slayer,500,50,25,20,3,2100,110,55",
            "g1,Ben,Cobra,Loss,Streets,Slayer,500,40,20,25,2,2000,100,50",
            "g2,Ann,Eagle,Win,Aquarius,Slayer,400,50,30,10,1,2500,120,60",
        )
        dropped: list[str] = []

        games = parse_delimited(raw, on_dropped=dropped.append)

        self.assertEqual(1, len(games))
        self.assertEqual(["g2"], dropped)

    def test_game_column_ids_get_prefix(self) -> None:
        raw = _csv(
            "1,Ann,Eagle,Win,Streets,Slayer,500,50,25,20,3,2100,110,55",
            "1,Ben,Cobra,Loss,Streets,Slayer,500,40,20,25,2,2000,100,50",
        )

        games = parse_delimited(raw, game_id="fallback", id_prefix="week1:")

        self.assertEqual("week1:1", games[0].game_id)

    def test_oversized_field_raises_parse_error(self) -> None:
        raw = _csv("g1,Ann,Eagle,Win,Streets,Slayer,500,50," + "9" * 200_000 + ",20,3,2100,110,55")

        with self.assertRaises(ParseError):
            parse_delimited(raw)

    def test_missing_required_columns_raise(self) -> None:
        raw = b"Player,Outcome,Map\nAnn,Win,Streets\n"

        with self.assertRaises(ParseError) as ctx:
            parse_delimited(raw)

        self.assertIn("kills", str(ctx.exception))
        self.assertIn("duration", str(ctx.exception))

    def test_header_only_export_raises(self) -> None:
        with self.assertRaises(ParseError):
            parse_delimited(HEADER.encode("utf-8"))

    def test_export_without_game_column_uses_given_id(self) -> None:
        raw = (
            b"Player,Outcome,Map,Mode,Duration,Score,Kills,Deaths,Assists,Damage\n"
            b"Ann,Won,Recharge,CTF,12:34,3,10,8,2,1500\n"
            b"Ben,Lost,Recharge,CTF,12:34,1,8,10,1,1200\n"
        )

        games = parse_delimited(raw, game_id="abc", series_id="9")

        self.assertEqual("abc", games[0].game_id)
        self.assertEqual(754, games[0].duration_seconds)
        self.assertEqual({}, games[0].team_labels)

    def test_non_numeric_stats_default_to_zero(self) -> None:
        raw = _csv(
            "g1,Ann,Eagle,Win,Streets,Slayer,500,50,n/a,20,3,2100,,55",
            "g1,Ben,Cobra,Loss,Streets,Slayer,500,40,20,25,2,2000,100,50",
        )

        game = parse_delimited(raw)[0]

        self.assertEqual(0, game.players[0].kills)
        self.assertEqual(0, game.players[0].shots_fired)


class DurationTests(unittest.TestCase):
    def test_parse_duration_formats(self) -> None:
        self.assertEqual(754, parse_duration_seconds("12:34"))
        self.assertEqual(3723, parse_duration_seconds("1:02:03"))
        self.assertEqual(90, parse_duration_seconds("90"))
        self.assertEqual(125, parse_duration_seconds(timedelta(minutes=2, seconds=5)))
        self.assertEqual(605, parse_duration_seconds(time(0, 10, 5)))
        self.assertEqual(0, parse_duration_seconds("soon"))
        self.assertEqual(0, parse_duration_seconds(None))


class ParseWorkbookTests(unittest.TestCase):
    def _workbook(self) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(["Game", "Player", "Team", "Outcome", "Map", "Mode", "Duration", "Score", "Kills", "Deaths", "Assists", "Damage"])
        sheet.append(["1", "Ann", "Red", "Win", "Streets", "Slayer", "8:20", 50, 30, 20, 4, 3000])
        sheet.append(["1", "Ben", "Blue", "Loss", "Streets", "Slayer", "8:20", 44, 20, 30, 2, 2500])
        sheet.append([None] * 12)
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    def test_parse_tabular_export(self) -> None:
        games = parse_export(self._workbook(), ExportFormat.TABULAR, series_id="s")

        self.assertEqual(1, len(games))
        self.assertEqual(500, games[0].duration_seconds)
        self.assertEqual(["Ann"], games[0].winning_gamertags)
        self.assertEqual("Blue", games[0].team_labels["ben"])

    def test_unreadable_workbook_raises_parse_error(self) -> None:
        with self.assertRaises(ParseError):
            parse_export(b"definitely not a zip", "tabular")


if __name__ == "__main__":
    unittest.main()
