"""CLI entrypoint for importing one series."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from hdc.db import Base, SessionLocal, engine
from hdc.ingestion.parser import ExportFormat
from hdc.ingestion.sync import IngestResult, SeriesIngestError, ingest_export, ingest_series
from hdc.settings import load_settings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import a series into the league database from LeafApp or a local export.",
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--series-url",
        type=str,
        help="Series page URL (e.g., https://leafapp.co/scrims/12345).",
    )
    source.add_argument(
        "--file",
        type=Path,
        help="Local export file holding every game of the series.",
    )

    parser.add_argument(
        "--format",
        type=str,
        choices=[fmt.value for fmt in ExportFormat],
        help="Export format for --file (default: from the file extension).",
    )
    parser.add_argument("--series-id", type=str, help="Series id for --file imports (default: file stem).")
    parser.add_argument("--division", type=int, required=True, help="Division id (1-4).")
    parser.add_argument("--week", type=int, required=True, help="Season week (1-5).")
    parser.add_argument("--team0", type=str, help="Team id to force for side A (winner of game 1).")
    parser.add_argument("--team1", type=str, help="Team id to force for side B.")

    return parser.parse_args()


def _resolve_format(args: argparse.Namespace) -> ExportFormat:
    if args.format:
        return ExportFormat(args.format)
    if args.file.suffix.lower() in {".xlsx", ".xlsm"}:
        return ExportFormat.TABULAR
    return ExportFormat.DELIMITED


def _run(args: argparse.Namespace) -> IngestResult:
    settings = load_settings()
    db = SessionLocal()
    try:
        if args.series_url:
            return asyncio.run(
                ingest_series(
                    db,
                    args.series_url,
                    division_id=args.division,
                    week=args.week,
                    settings=settings,
                    team0_id=args.team0,
                    team1_id=args.team1,
                )
            )
        return ingest_export(
            db,
            args.file.read_bytes(),
            _resolve_format(args),
            series_id=args.series_id or args.file.stem,
            division_id=args.division,
            week=args.week,
            team0_id=args.team0,
            team1_id=args.team1,
        )
    finally:
        db.close()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    args = _parse_args()
    Base.metadata.create_all(bind=engine)

    logging.info("Starting import division=%s week=%s", args.division, args.week)
    try:
        result = _run(args)
    except (SeriesIngestError, ValueError) as exc:
        logging.error("Import failed: %s", exc)
        raise SystemExit(1) from exc

    series = result.build.result
    logging.info(
        "Done: series=%s match_id=%s score=%s-%s (%s)",
        result.series_id,
        result.match_id,
        series.team0_wins,
        series.team1_wins,
        result.summary,
    )
    for skipped in result.skipped:
        logging.warning("Skipped game=%s: %s", skipped.game_id, skipped.reason)
    for flag in result.build.resolved.flags:
        logging.warning("Data quality game=%s: %s", flag.game_id, flag.message)


if __name__ == "__main__":
    main()
