from __future__ import annotations

import hmac
import logging
import os
import secrets
from dataclasses import dataclass

logger = logging.getLogger(__name__)
_SETTINGS: LeagueSettings | None = None

DEFAULT_LEAF_BASE_URL = "https://leafapp.co"
DEFAULT_TIMEOUT_SECONDS = 12
DEFAULT_INGEST_CONCURRENCY = 4
DEFAULT_USER_AGENT = "hdc-league/1.0 (+https://example.local)"


@dataclass(frozen=True)
class LeagueSettings:
    admin_secret: str
    leaf_base_url: str = DEFAULT_LEAF_BASE_URL
    fetch_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ingest_concurrency: int = DEFAULT_INGEST_CONCURRENCY
    user_agent: str = DEFAULT_USER_AGENT


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default
    if value < 1:
        logger.warning("Ignoring %s=%s (must be >= 1), using %s", name, value, default)
        return default
    return value


def load_settings() -> LeagueSettings:
    """Build settings from the environment."""

    secret = (os.getenv("HDC_ADMIN_SECRET") or "").strip()
    if not secret:
        secret = secrets.token_urlsafe(16)
        logger.warning(
            "HDC_ADMIN_SECRET missing. Generated a temporary admin key: %s. "
            "Set HDC_ADMIN_SECRET to keep admin access across restarts.",
            secret,
        )
    return LeagueSettings(
        admin_secret=secret,
        leaf_base_url=(os.getenv("LEAF_BASE_URL") or DEFAULT_LEAF_BASE_URL).rstrip("/"),
        fetch_timeout_seconds=_env_int("LEAF_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        ingest_concurrency=_env_int("INGEST_CONCURRENCY", DEFAULT_INGEST_CONCURRENCY),
        user_agent=(os.getenv("LEAF_USER_AGENT") or DEFAULT_USER_AGENT).strip(),
    )


def get_settings() -> LeagueSettings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


def check_admin_key(settings: LeagueSettings, candidate: str | None) -> bool:
    if not candidate:
        return False
    return hmac.compare_digest(
        candidate.encode("utf-8"),
        settings.admin_secret.encode("utf-8"),
    )
