"""Application settings constants."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


APP_VERSION = os.environ.get("HARVESTER_VERSION", "0.1.0")

# Twitch application credential (client-credentials grant).
TWITCH_CLIENT_ID = os.environ.get("TWITCH_CLIENT_ID")
TWITCH_CLIENT_SECRET = os.environ.get("TWITCH_CLIENT_SECRET")

# What to harvest. 21779 is League of Legends.
GAME_ID = os.environ.get("HARVESTER_GAME_ID", "21779")
GAME_SLUG = os.environ.get("HARVESTER_GAME_SLUG", "lol")
LANGUAGE = os.environ.get("HARVESTER_LANGUAGE", "fr")
DAYS_TO_FETCH = _env_int("HARVESTER_DAYS_TO_FETCH", 3)
TIMEZONE = os.environ.get("HARVESTER_TIMEZONE", "UTC")

# Helix stops returning cursors after ~1000 results per query; 30-minute
# windows keep each query under that ceiling at peak hours.
WINDOW_MINUTES = _env_int("HARVESTER_WINDOW_MINUTES", 30)
# 15 parallel windows per batch stays under the 800 req/min Helix budget.
WINDOW_CONCURRENCY = _env_int("HARVESTER_WINDOW_CONCURRENCY", 15)
CLIPS_PAGE_SIZE = 100

DOWNLOAD_BATCH_SIZE = _env_int("HARVESTER_DOWNLOAD_BATCH_SIZE", 3)
TOKEN_MARGIN_SECONDS = _env_int("HARVESTER_TOKEN_MARGIN_SECONDS", 300)
HTTP_TIMEOUT_SECONDS = _env_float("HARVESTER_HTTP_TIMEOUT_SECONDS", 20.0)

FFMPEG_BIN = os.environ.get("HARVESTER_FFMPEG_BIN", "ffmpeg")
FFPROBE_BIN = os.environ.get("HARVESTER_FFPROBE_BIN", "ffprobe")
FFMPEG_TIMEOUT_SECONDS = _env_float("HARVESTER_FFMPEG_TIMEOUT_SECONDS", 300.0)

API_HOST = os.environ.get("HARVESTER_HOST", "127.0.0.1")
API_PORT = _env_int("HARVESTER_PORT", 8000)

WORK_DIR = Path(os.environ.get("HARVESTER_WORK_DIR") or tempfile.gettempdir()).resolve()
LOG_DIR = Path(os.environ.get("HARVESTER_LOG_DIR", "logs")).resolve()

# Toggle for comparing the assembled output duration with the clip durations.
ASSEMBLY_VALIDATE_DURATION = _env_bool("ASSEMBLY_VALIDATE_DURATION", True)

# Allowed absolute difference between expected and actual assembled duration.
ASSEMBLY_DURATION_TOLERANCE_SECONDS = _env_float("ASSEMBLY_DURATION_TOLERANCE_SECONDS", 2.0)


def require_credentials() -> tuple[str, str]:
    """Return ``(client_id, client_secret)`` or raise when either is missing."""
    if not TWITCH_CLIENT_ID or not TWITCH_CLIENT_SECRET:
        raise RuntimeError("TWITCH_CLIENT_ID and TWITCH_CLIENT_SECRET are required")
    return TWITCH_CLIENT_ID, TWITCH_CLIENT_SECRET
