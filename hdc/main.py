from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Header, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from hdc.db import Base, engine, get_db
from hdc.divisions import get_division_name
from hdc.ingestion.leaf_client import LeafClientError
from hdc.ingestion.sync import (
    NoGamesFoundError,
    SeriesAlreadyImportedError,
    SeriesIngestError,
    UnmatchedTeamError,
    ingest_series,
)
from hdc.models import Game, Match, SubmissionStatus, Team
from hdc.schemas import (
    AdminMatchIn,
    LeaderboardOut,
    MatchOut,
    MergeNoteOut,
    SeriesImportIn,
    SeriesImportOut,
    SkippedGameOut,
    StandingOut,
    SubmissionIn,
    SubmissionOut,
    SubmissionResultOut,
    TeamOut,
)
from hdc.settings import LeagueSettings, check_admin_key, get_settings
from hdc.standings import LeaderboardSort, compute_leaderboard, compute_standings
from hdc.submissions import (
    InvalidSubmissionError,
    SubmissionNotFoundError,
    create_admin_match,
    delete_match,
    delete_submission,
    force_approve,
    list_submissions,
    submit_result,
)

app = FastAPI(title="HDC League")
logger = logging.getLogger(__name__)


@app.on_event("startup")
def create_schema() -> None:
    Base.metadata.create_all(bind=engine)
    get_settings()
    logger.info("App starting up, schema ready")


def require_admin(
    x_admin_key: str | None = Header(default=None),
    settings: LeagueSettings = Depends(get_settings),
) -> None:
    if not check_admin_key(settings, x_admin_key):
        raise HTTPException(status_code=401, detail="Admin key required")


def _require_division(division_id: int) -> int:
    if get_division_name(division_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown division: {division_id}")
    return division_id


@app.get("/api/teams", response_model=list[TeamOut])
def api_teams(division_id: int | None = None, db: Session = Depends(get_db)):
    query = db.query(Team).options(selectinload(Team.players)).order_by(Team.division_id, Team.name)
    if division_id is not None:
        query = query.filter(Team.division_id == _require_division(division_id))
    return [
        TeamOut(
            id=team.id,
            division_id=team.division_id,
            name=team.name,
            players=[player.gamertag for player in team.players],
        )
        for team in query.all()
    ]


@app.get("/api/standings", response_model=list[StandingOut])
def api_standings(division_id: int = 1, db: Session = Depends(get_db)):
    rows = compute_standings(db, _require_division(division_id))
    return [StandingOut.model_validate(row) for row in rows]


@app.get("/api/leaderboards", response_model=list[LeaderboardOut])
def api_leaderboards(
    division_id: int = 1,
    sort_by: LeaderboardSort = LeaderboardSort.OVERALL_KD,
    db: Session = Depends(get_db),
):
    rows = compute_leaderboard(db, _require_division(division_id), sort_by)
    return [LeaderboardOut.model_validate(row) for row in rows]


@app.get("/api/matches/{match_id}", response_model=MatchOut)
def api_match(match_id: int, db: Session = Depends(get_db)):
    match = (
        db.query(Match)
        .options(selectinload(Match.games).selectinload(Game.player_stats))
        .filter(Match.id == match_id)
        .one_or_none()
    )
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


@app.post("/api/series/import", response_model=SeriesImportOut)
async def api_import_series(
    payload: SeriesImportIn,
    db: Session = Depends(get_db),
    settings: LeagueSettings = Depends(get_settings),
):
    try:
        result = await ingest_series(
            db,
            payload.series_url,
            division_id=payload.division_id,
            week=payload.week,
            settings=settings,
            team0_id=payload.team0_id,
            team1_id=payload.team1_id,
        )
    except UnmatchedTeamError as exc:
        sides = {side.value: match.status.value for side, match in exc.matches.sides.items()}
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "sides": sides,
                "side_a_gamertags": exc.resolved.side_a_gamertags,
                "side_b_gamertags": exc.resolved.side_b_gamertags,
            },
        ) from exc
    except SeriesAlreadyImportedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except NoGamesFoundError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except SeriesIngestError as exc:
        status = 502 if isinstance(exc.__cause__, LeafClientError) else 400
        raise HTTPException(status_code=status, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    series = result.build.result
    return SeriesImportOut(
        series_id=result.series_id,
        match_id=result.match_id,
        team0_id=series.team0_id,
        team1_id=series.team1_id,
        team0_wins=series.team0_wins,
        team1_wins=series.team1_wins,
        total_games=result.total_games,
        processed_games=result.processed_games,
        summary=result.summary,
        skipped=[SkippedGameOut(game_id=s.game_id, reason=s.reason) for s in result.skipped],
        merge_notes=[
            MergeNoteOut(
                map=note.map,
                mode=note.mode,
                decision=note.decision.value,
                source_game_ids=list(note.source_game_ids),
                reason=note.reason,
            )
            for note in result.build.merge.notes
        ],
        data_quality_flags=[f"{flag.game_id}: {flag.message}" for flag in result.build.resolved.flags],
    )


@app.post("/api/submissions", response_model=SubmissionResultOut)
def api_submit(payload: SubmissionIn, db: Session = Depends(get_db)):
    try:
        result = submit_result(
            db,
            division_id=payload.division_id,
            week=payload.week,
            your_team_id=payload.your_team_id,
            opponent_id=payload.opponent_id,
            your_maps=payload.your_maps,
            opponent_maps=payload.opponent_maps,
            submitted_by=payload.submitted_by,
        )
    except InvalidSubmissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Concurrent submission, please retry") from exc
    return SubmissionResultOut(
        outcome=result.outcome.value,
        message=result.message,
        match_key=result.match_key,
        submission_id=result.submission_id,
        match_id=result.match_id,
    )


@app.get("/api/submissions", response_model=list[SubmissionOut])
def api_list_submissions(status: SubmissionStatus | None = None, db: Session = Depends(get_db)):
    return list_submissions(db, status)


@app.post(
    "/api/admin/submissions/{submission_id}/approve",
    response_model=MatchOut,
    dependencies=[Depends(require_admin)],
)
def api_approve_submission(submission_id: int, db: Session = Depends(get_db)):
    try:
        return force_approve(db, submission_id)
    except SubmissionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidSubmissionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.delete("/api/admin/submissions/{submission_id}", dependencies=[Depends(require_admin)])
def api_delete_submission(submission_id: int, db: Session = Depends(get_db)):
    try:
        delete_submission(db, submission_id)
    except SubmissionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True}


@app.post("/api/admin/matches", response_model=MatchOut, dependencies=[Depends(require_admin)])
def api_admin_add_match(payload: AdminMatchIn, db: Session = Depends(get_db)):
    try:
        return create_admin_match(
            db,
            division_id=payload.division_id,
            week=payload.week,
            team_a_id=payload.team_a_id,
            team_b_id=payload.team_b_id,
            team_a_maps=payload.team_a_maps,
            team_b_maps=payload.team_b_maps,
        )
    except InvalidSubmissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/admin/matches/{match_id}", dependencies=[Depends(require_admin)])
def api_admin_delete_match(match_id: int, db: Session = Depends(get_db)):
    try:
        delete_match(db, match_id)
    except SubmissionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True}
