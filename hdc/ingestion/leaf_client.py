"""HTTP client for the LeafApp stat service (series pages and per-game CSVs)."""

from __future__ import annotations

import logging
import re

import requests

from hdc.settings import LeagueSettings

logger = logging.getLogger(__name__)
MAX_ERROR_SNIPPET = 300

_SERIES_ID_RE = re.compile(r"leafapp\.co/scrims/(\d+)")
_GAME_LINK_RE = re.compile(r'href="[^"]*/game/([a-f0-9-]{36})"')


class LeafClientError(RuntimeError):
    pass


def extract_series_id(series_url: str) -> str:
    """Pull the numeric series id out of a ``/scrims/<id>`` URL."""

    match = _SERIES_ID_RE.search(series_url or "")
    if not match:
        raise ValueError(f"Invalid series URL: {series_url!r}")
    return match.group(1)


def build_series_matches_url(settings: LeagueSettings, series_id: str) -> str:
    return f"{settings.leaf_base_url}/scrims/{series_id}/matches"


def build_game_export_url(settings: LeagueSettings, game_id: str) -> str:
    return f"{settings.leaf_base_url}/game/{game_id}/csv"


def fetch_export(url: str, settings: LeagueSettings) -> bytes:
    """GET a URL and return the body. One attempt; failures raise LeafClientError."""

    headers = {"User-Agent": settings.user_agent}
    try:
        response = requests.get(url, headers=headers, timeout=settings.fetch_timeout_seconds)
    except requests.RequestException as exc:
        raise LeafClientError(f"Request to {url} failed: {exc}") from exc

    if response.status_code != 200:
        snippet = (response.text or "")[:MAX_ERROR_SNIPPET]
        logger.error("Leaf non-200 status=%s url=%s body=%s", response.status_code, url, snippet)
        raise LeafClientError(f"Leaf returned status {response.status_code} for {url}")
    return response.content


def extract_game_identifiers(html: str) -> list[str]:
    """Game ids linked from a series page, de-duplicated, in page order."""

    game_ids: list[str] = []
    for game_id in _GAME_LINK_RE.findall(html):
        if game_id not in game_ids:
            game_ids.append(game_id)
    return game_ids


def list_game_identifiers(series_url: str, settings: LeagueSettings) -> list[str]:
    series_id = extract_series_id(series_url)
    page = fetch_export(build_series_matches_url(settings, series_id), settings)
    game_ids = extract_game_identifiers(page.decode("utf-8", errors="replace"))
    logger.info("Found %s game(s) on series=%s", len(game_ids), series_id)
    return game_ids
