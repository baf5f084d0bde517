from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from hdc import submissions
from hdc.db import Base, create_session_factory
from hdc.models import Match, MatchSubmission, SubmissionStatus, Team
from hdc.standings import compute_standings
from hdc.submissions import (
    InvalidSubmissionError,
    ScoreClaim,
    SubmissionNotFoundError,
    SubmissionOutcome,
    compute_match_key,
    create_admin_match,
    delete_match,
    delete_submission,
    force_approve,
    reconcile,
    submit_result,
)


def _make_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return create_session_factory(engine)()


class MatchKeyTests(unittest.TestCase):
    def test_key_is_order_independent(self) -> None:
        self.assertEqual("a_b_w2", compute_match_key("b", "a", 2))
        self.assertEqual(compute_match_key("x", "y", 1), compute_match_key("y", "x", 1))


class ReconcileTests(unittest.TestCase):
    def test_first_claim_is_pending(self) -> None:
        claim = ScoreClaim("a", "b", 3, 1)

        self.assertIs(SubmissionOutcome.PENDING, reconcile(None, claim))

    def test_matching_claims_confirm(self) -> None:
        claim = ScoreClaim("a", "b", 3, 1)

        self.assertIs(SubmissionOutcome.CONFIRMED, reconcile(ScoreClaim("a", "b", 3, 1), claim))

    def test_different_claims_dispute(self) -> None:
        claim = ScoreClaim("a", "b", 3, 2)

        self.assertIs(SubmissionOutcome.DISPUTED, reconcile(ScoreClaim("a", "b", 3, 1), claim))


class SubmitResultTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = _make_session()
        self.db.add_all(
            [
                Team(id="team-a", division_id=1, name="Alpha"),
                Team(id="team-b", division_id=1, name="Bravo"),
                Team(id="team-c", division_id=2, name="Charlie"),
            ]
        )
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _submit(self, team: str, opponent: str, maps: int, opponent_maps: int, week: int = 1):
        return submit_result(
            self.db,
            division_id=1,
            week=week,
            your_team_id=team,
            opponent_id=opponent,
            your_maps=maps,
            opponent_maps=opponent_maps,
        )

    def test_first_submission_waits_for_opponent(self) -> None:
        result = self._submit("team-b", "team-a", 1, 3)

        self.assertIs(SubmissionOutcome.PENDING, result.outcome)
        row = self.db.query(MatchSubmission).one()
        self.assertEqual(("team-a", "team-b", 3, 1), (row.team1_id, row.team2_id, row.team1_maps, row.team2_maps))
        self.assertEqual("Bravo", row.submitted_by)
        self.assertEqual(SubmissionStatus.PENDING.value, row.status)

    def test_opposite_perspectives_of_same_score_confirm(self) -> None:
        self._submit("team-a", "team-b", 3, 1)
        result = self._submit("team-b", "team-a", 1, 3)

        self.assertIs(SubmissionOutcome.CONFIRMED, result.outcome)
        match = self.db.query(Match).one()
        self.assertEqual((3, 1), (match.team1_maps, match.team2_maps))
        self.assertFalse(match.admin_approved)
        rows = self.db.query(MatchSubmission).all()
        self.assertEqual(2, len(rows))
        self.assertTrue(all(row.status == SubmissionStatus.RESOLVED.value for row in rows))
        self.assertTrue(all(row.match_id == match.id for row in rows))

    def test_conflicting_scores_dispute_both_rows(self) -> None:
        self._submit("team-a", "team-b", 3, 1)
        result = self._submit("team-b", "team-a", 3, 2)

        self.assertIs(SubmissionOutcome.DISPUTED, result.outcome)
        self.assertEqual(0, self.db.query(Match).count())
        statuses = {row.status for row in self.db.query(MatchSubmission).all()}
        self.assertEqual({SubmissionStatus.DISPUTED.value}, statuses)

    def test_different_weeks_do_not_interact(self) -> None:
        self._submit("team-a", "team-b", 3, 1, week=1)
        result = self._submit("team-b", "team-a", 3, 0, week=2)

        self.assertIs(SubmissionOutcome.PENDING, result.outcome)

    def test_invalid_submissions_are_rejected(self) -> None:
        cases = [
            ("team-a", "team-a", 3, 1, 1),
            ("team-a", "team-b", 3, 3, 1),
            ("team-a", "team-b", 2, 1, 1),
            ("team-a", "team-b", 3, -1, 1),
            ("team-a", "team-b", 3, 1, 6),
            ("team-a", "team-c", 3, 1, 1),
            ("team-a", "team-z", 3, 1, 1),
        ]
        for team, opponent, maps, opponent_maps, week in cases:
            with self.subTest(team=team, opponent=opponent, score=(maps, opponent_maps), week=week):
                with self.assertRaises(InvalidSubmissionError):
                    self._submit(team, opponent, maps, opponent_maps, week=week)
        self.assertEqual(0, self.db.query(MatchSubmission).count())

    def test_unknown_division_is_rejected(self) -> None:
        with self.assertRaises(InvalidSubmissionError):
            submit_result(
                self.db,
                division_id=9,
                week=1,
                your_team_id="team-a",
                opponent_id="team-b",
                your_maps=3,
                opponent_maps=0,
            )

    def test_lost_race_is_retried_once(self) -> None:
        real_apply = submissions._apply_submission
        calls: list[int] = []

        def flaky(*args):
            calls.append(1)
            if len(calls) == 1:
                raise IntegrityError("INSERT INTO match_submissions", {}, Exception("duplicate key"))
            return real_apply(*args)

        with patch("hdc.submissions._apply_submission", side_effect=flaky):
            result = self._submit("team-a", "team-b", 3, 1)

        self.assertEqual(2, len(calls))
        self.assertIs(SubmissionOutcome.PENDING, result.outcome)

    def test_partial_index_allows_one_pending_row_per_key(self) -> None:
        self._submit("team-a", "team-b", 3, 1)
        key = compute_match_key("team-a", "team-b", 1)
        self.db.add(
            MatchSubmission(
                match_key=key,
                division_id=1,
                week=1,
                team1_id="team-a",
                team2_id="team-b",
                team1_maps=3,
                team2_maps=0,
                status=SubmissionStatus.PENDING.value,
            )
        )

        with self.assertRaises(IntegrityError):
            self.db.commit()
        self.db.rollback()


class AdminOverrideTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = _make_session()
        self.db.add_all(
            [
                Team(id="team-a", division_id=1, name="Alpha"),
                Team(id="team-b", division_id=1, name="Bravo"),
            ]
        )
        self.db.commit()
        for team, opponent, maps, opponent_maps in (("team-a", "team-b", 3, 1), ("team-b", "team-a", 3, 2)):
            submit_result(
                self.db,
                division_id=1,
                week=1,
                your_team_id=team,
                opponent_id=opponent,
                your_maps=maps,
                opponent_maps=opponent_maps,
            )

    def tearDown(self) -> None:
        self.db.close()

    def test_force_approve_resolves_every_open_row(self) -> None:
        first = self.db.query(MatchSubmission).order_by(MatchSubmission.id).first()

        match = force_approve(self.db, first.id)

        self.assertTrue(match.admin_approved)
        self.assertEqual((3, 1), (match.team1_maps, match.team2_maps))
        statuses = {row.status for row in self.db.query(MatchSubmission).all()}
        self.assertEqual({SubmissionStatus.RESOLVED.value}, statuses)

        with self.assertRaises(InvalidSubmissionError):
            force_approve(self.db, first.id)

    def test_delete_submission(self) -> None:
        row = self.db.query(MatchSubmission).first()

        delete_submission(self.db, row.id)

        self.assertEqual(1, self.db.query(MatchSubmission).count())
        with self.assertRaises(SubmissionNotFoundError):
            delete_submission(self.db, row.id)

    def test_delete_match_detaches_submissions(self) -> None:
        first = self.db.query(MatchSubmission).order_by(MatchSubmission.id).first()
        match = force_approve(self.db, first.id)

        delete_match(self.db, match.id)

        self.assertEqual(0, self.db.query(Match).count())
        self.assertTrue(all(row.match_id is None for row in self.db.query(MatchSubmission).all()))

    def test_quick_add_counts_in_standings(self) -> None:
        create_admin_match(
            self.db,
            division_id=1,
            week=2,
            team_a_id="team-b",
            team_b_id="team-a",
            team_a_maps=3,
            team_b_maps=2,
        )

        standings = compute_standings(self.db, 1)

        self.assertEqual(["Bravo", "Alpha"], [row.name for row in standings])
        self.assertEqual((1, 0, 3, 2, 1), (
            standings[0].wins,
            standings[0].losses,
            standings[0].maps_won,
            standings[0].maps_lost,
            standings[0].map_diff,
        ))


if __name__ == "__main__":
    unittest.main()
