"""ffprobe helpers for inspecting assembled clip files."""

from __future__ import annotations

import json
import subprocess
from typing import Any

from config.settings import FFPROBE_BIN
from engine.errors import EngineError


def probe_media(file_path: str, *, binary: str = FFPROBE_BIN, timeout: float = 15) -> dict[str, Any]:
    """Return ffprobe's ``format`` section for ``file_path`` as a dict.

    Raises:
        EngineError: ffprobe is missing, timed out, exited non-zero or printed
            something other than JSON.
    """
    args = [binary, "-v", "error", "-print_format", "json", "-show_format", file_path]
    try:
        completed = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise EngineError(binary, "ffprobe is not installed or not available in PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise EngineError(binary, f"timed out after {timeout}s probing {file_path}") from exc

    if completed.returncode != 0:
        reason = (completed.stderr or "").strip() or "no error output"
        raise EngineError(binary, reason, returncode=completed.returncode)
    try:
        payload = json.loads(completed.stdout or "{}")
    except json.JSONDecodeError as exc:
        raise EngineError(binary, f"unreadable output for {file_path}") from exc
    return payload.get("format") or {}


def get_media_duration(file_path: str) -> float:
    """Container duration in seconds."""
    raw = probe_media(file_path).get("duration")
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise EngineError(FFPROBE_BIN, f"no usable duration for {file_path}: {raw!r}") from exc
