"""Quick probe for the games linked from a LeafApp series page."""

from __future__ import annotations

import argparse
import logging

from hdc.ingestion.leaf_client import LeafClientError, build_game_export_url, list_game_identifiers
from hdc.settings import load_settings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="List the game identifiers on a series page and their export URLs.",
    )
    parser.add_argument(
        "series_url",
        type=str,
        help="Series page URL (e.g., https://leafapp.co/scrims/12345).",
    )
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = _parse_args()
    settings = load_settings()

    try:
        game_ids = list_game_identifiers(args.series_url, settings)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    except LeafClientError as exc:
        logging.error("Leaf error: %s", exc)
        raise SystemExit(1) from exc

    logging.info("Found %s games for %s", len(game_ids), args.series_url)
    for game_id in game_ids:
        logging.info("%s %s", game_id, build_game_export_url(settings, game_id))


if __name__ == "__main__":
    main()
