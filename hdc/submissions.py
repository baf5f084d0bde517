"""Two-submitter consensus for fixture results.

Both captains report the series score independently. The first report waits
as ``pending``; the second either matches it (a confirmed ``Match`` is created
and both reports become ``resolved``) or disagrees (both become ``disputed``
and wait for an admin).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hdc.divisions import get_division_name, is_valid_week
from hdc.models import Match, MatchSubmission, SubmissionStatus, Team

logger = logging.getLogger(__name__)

MAPS_TO_WIN = 3
MAX_MAPS = 5
_SUBMIT_ATTEMPTS = 2


class InvalidSubmissionError(ValueError):
    pass


class SubmissionNotFoundError(LookupError):
    pass


class SubmissionOutcome(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISPUTED = "disputed"


@dataclass(frozen=True)
class ScoreClaim:
    """A series score in canonical orientation (team1_id < team2_id)."""

    team1_id: str
    team2_id: str
    team1_maps: int
    team2_maps: int


@dataclass(frozen=True)
class SubmissionResult:
    outcome: SubmissionOutcome
    match_key: str
    submission_id: int
    match_id: int | None = None

    @property
    def message(self) -> str:
        if self.outcome is SubmissionOutcome.CONFIRMED:
            return "Results matched! Match confirmed."
        if self.outcome is SubmissionOutcome.DISPUTED:
            return "Results don't match! Flagged for admin review."
        return "Result submitted. Awaiting opponent confirmation."


def compute_match_key(team_a_id: str, team_b_id: str, week: int) -> str:
    low, high = sorted((team_a_id, team_b_id))
    return f"{low}_{high}_w{week}"


def is_valid_bo5(maps_a: int, maps_b: int) -> bool:
    if maps_a < 0 or maps_b < 0:
        return False
    if maps_a + maps_b > MAX_MAPS:
        return False
    return maps_a >= MAPS_TO_WIN or maps_b >= MAPS_TO_WIN


def normalize_claim(your_team_id: str, opponent_id: str, your_maps: int, opponent_maps: int) -> ScoreClaim:
    if your_team_id <= opponent_id:
        return ScoreClaim(your_team_id, opponent_id, your_maps, opponent_maps)
    return ScoreClaim(opponent_id, your_team_id, opponent_maps, your_maps)


def validate_submission(your_team_id: str, opponent_id: str, your_maps: int, opponent_maps: int, week: int) -> None:
    if not your_team_id or not opponent_id:
        raise InvalidSubmissionError("Please select both teams")
    if your_team_id == opponent_id:
        raise InvalidSubmissionError("Please select two different teams")
    if not is_valid_bo5(your_maps, opponent_maps):
        raise InvalidSubmissionError("Invalid Bo5 score (winner needs 3 maps)")
    if not is_valid_week(week):
        raise InvalidSubmissionError(f"Week out of range: {week}")


def reconcile(pending: ScoreClaim | None, claim: ScoreClaim) -> SubmissionOutcome:
    """Decide what a new claim does to the fixture's current pending claim."""

    if pending is None:
        return SubmissionOutcome.PENDING
    if (pending.team1_maps, pending.team2_maps) == (claim.team1_maps, claim.team2_maps):
        return SubmissionOutcome.CONFIRMED
    return SubmissionOutcome.DISPUTED


def _claim_of(row: MatchSubmission) -> ScoreClaim:
    return ScoreClaim(row.team1_id, row.team2_id, row.team1_maps, row.team2_maps)


def _check_teams(db: Session, division_id: int, team_ids: tuple[str, str]) -> dict[str, Team]:
    if get_division_name(division_id) is None:
        raise InvalidSubmissionError(f"Unknown division: {division_id}")
    teams = {team.id: team for team in db.query(Team).filter(Team.id.in_(team_ids)).all()}
    for team_id in team_ids:
        team = teams.get(team_id)
        if team is None:
            raise InvalidSubmissionError(f"Unknown team: {team_id}")
        if team.division_id != division_id:
            raise InvalidSubmissionError(f"Team {team.name} is not in division {division_id}")
    return teams


def _new_row(
    match_key: str,
    division_id: int,
    week: int,
    claim: ScoreClaim,
    submitted_by: str,
    status: SubmissionStatus,
) -> MatchSubmission:
    return MatchSubmission(
        match_key=match_key,
        division_id=division_id,
        week=week,
        team1_id=claim.team1_id,
        team2_id=claim.team2_id,
        team1_maps=claim.team1_maps,
        team2_maps=claim.team2_maps,
        submitted_by=submitted_by,
        status=status.value,
    )


def _apply_submission(
    db: Session,
    match_key: str,
    division_id: int,
    week: int,
    claim: ScoreClaim,
    submitted_by: str,
) -> SubmissionResult:
    existing = (
        db.query(MatchSubmission)
        .filter(
            MatchSubmission.match_key == match_key,
            MatchSubmission.status == SubmissionStatus.PENDING.value,
        )
        .with_for_update()
        .first()
    )
    outcome = reconcile(_claim_of(existing) if existing else None, claim)

    if outcome is SubmissionOutcome.PENDING:
        row = _new_row(match_key, division_id, week, claim, submitted_by, SubmissionStatus.PENDING)
        db.add(row)
        db.commit()
        logger.info("Submission #%s pending match_key=%s", row.id, match_key)
        return SubmissionResult(outcome=outcome, match_key=match_key, submission_id=row.id)

    if outcome is SubmissionOutcome.CONFIRMED:
        match = Match(
            division_id=division_id,
            week=week,
            team1_id=claim.team1_id,
            team2_id=claim.team2_id,
            team1_maps=claim.team1_maps,
            team2_maps=claim.team2_maps,
            admin_approved=False,
        )
        db.add(match)
        db.flush()
        row = _new_row(match_key, division_id, week, claim, submitted_by, SubmissionStatus.RESOLVED)
        row.match_id = match.id
        existing.status = SubmissionStatus.RESOLVED.value
        existing.match_id = match.id
        db.add(row)
        db.commit()
        logger.info("Submission #%s confirmed match_id=%s match_key=%s", row.id, match.id, match_key)
        return SubmissionResult(outcome=outcome, match_key=match_key, submission_id=row.id, match_id=match.id)

    row = _new_row(match_key, division_id, week, claim, submitted_by, SubmissionStatus.DISPUTED)
    existing.status = SubmissionStatus.DISPUTED.value
    db.add(row)
    db.commit()
    logger.warning(
        "Submission #%s disputes #%s match_key=%s (%s-%s vs %s-%s)",
        row.id,
        existing.id,
        match_key,
        claim.team1_maps,
        claim.team2_maps,
        existing.team1_maps,
        existing.team2_maps,
    )
    return SubmissionResult(outcome=outcome, match_key=match_key, submission_id=row.id)


def submit_result(
    db: Session,
    *,
    division_id: int,
    week: int,
    your_team_id: str,
    opponent_id: str,
    your_maps: int,
    opponent_maps: int,
    submitted_by: str | None = None,
) -> SubmissionResult:
    """Record one side's claim and reconcile it against the fixture's pending claim."""

    validate_submission(your_team_id, opponent_id, your_maps, opponent_maps, week)
    teams = _check_teams(db, division_id, (your_team_id, opponent_id))
    claim = normalize_claim(your_team_id, opponent_id, your_maps, opponent_maps)
    match_key = compute_match_key(your_team_id, opponent_id, week)
    submitter = submitted_by or teams[your_team_id].name or "Unknown"

    for attempt in range(1, _SUBMIT_ATTEMPTS + 1):
        try:
            return _apply_submission(db, match_key, division_id, week, claim, submitter)
        except IntegrityError:
            db.rollback()
            if attempt == _SUBMIT_ATTEMPTS:
                raise
            # another pending row for this key landed first; reconcile against it
            logger.warning("Concurrent submission for match_key=%s, retrying", match_key)
    raise AssertionError("unreachable")


def _get_submission(db: Session, submission_id: int) -> MatchSubmission:
    submission = db.query(MatchSubmission).filter(MatchSubmission.id == submission_id).one_or_none()
    if submission is None:
        raise SubmissionNotFoundError(f"Submission {submission_id} not found")
    return submission


def force_approve(db: Session, submission_id: int) -> Match:
    """Admin override: confirm a pending or disputed submission's score as-is."""

    submission = _get_submission(db, submission_id)
    if submission.status == SubmissionStatus.RESOLVED.value:
        raise InvalidSubmissionError(f"Submission {submission_id} is already resolved")

    match = Match(
        division_id=submission.division_id,
        week=submission.week,
        team1_id=submission.team1_id,
        team2_id=submission.team2_id,
        team1_maps=submission.team1_maps,
        team2_maps=submission.team2_maps,
        admin_approved=True,
    )
    db.add(match)
    db.flush()

    open_rows = (
        db.query(MatchSubmission)
        .filter(
            MatchSubmission.match_key == submission.match_key,
            MatchSubmission.status.in_(
                [SubmissionStatus.PENDING.value, SubmissionStatus.DISPUTED.value]
            ),
        )
        .all()
    )
    for row in open_rows:
        row.status = SubmissionStatus.RESOLVED.value
        row.match_id = match.id
    db.commit()
    logger.info(
        "Admin approved submission #%s match_id=%s match_key=%s (resolved %s row(s))",
        submission_id,
        match.id,
        submission.match_key,
        len(open_rows),
    )
    return match


def delete_submission(db: Session, submission_id: int) -> None:
    submission = _get_submission(db, submission_id)
    db.delete(submission)
    db.commit()
    logger.info("Admin deleted submission #%s match_key=%s", submission_id, submission.match_key)


def list_submissions(db: Session, status: SubmissionStatus | None = None) -> list[MatchSubmission]:
    query = db.query(MatchSubmission).order_by(MatchSubmission.created_at.desc(), MatchSubmission.id.desc())
    if status is not None:
        query = query.filter(MatchSubmission.status == status.value)
    return query.all()


def create_admin_match(
    db: Session,
    *,
    division_id: int,
    week: int,
    team_a_id: str,
    team_b_id: str,
    team_a_maps: int,
    team_b_maps: int,
) -> Match:
    """Admin quick-add of a confirmed result, bypassing the two-submitter flow."""

    validate_submission(team_a_id, team_b_id, team_a_maps, team_b_maps, week)
    _check_teams(db, division_id, (team_a_id, team_b_id))
    claim = normalize_claim(team_a_id, team_b_id, team_a_maps, team_b_maps)
    match = Match(
        division_id=division_id,
        week=week,
        team1_id=claim.team1_id,
        team2_id=claim.team2_id,
        team1_maps=claim.team1_maps,
        team2_maps=claim.team2_maps,
        admin_approved=True,
    )
    db.add(match)
    db.commit()
    logger.info("Admin added match_id=%s %s-%s", match.id, claim.team1_maps, claim.team2_maps)
    return match


def delete_match(db: Session, match_id: int) -> None:
    match = db.query(Match).filter(Match.id == match_id).one_or_none()
    if match is None:
        raise SubmissionNotFoundError(f"Match {match_id} not found")
    for submission in db.query(MatchSubmission).filter(MatchSubmission.match_id == match_id).all():
        submission.match_id = None
    db.flush()
    db.delete(match)
    db.commit()
    logger.info("Admin deleted match_id=%s", match_id)
