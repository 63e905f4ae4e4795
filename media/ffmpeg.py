"""Wrapper around ``ffmpeg`` for lossless remux and ordered concatenation."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from config.settings import FFMPEG_BIN, FFMPEG_TIMEOUT_SECONDS
from engine.errors import EngineError

logger = logging.getLogger(__name__)

_STDERR_LIMIT = 800


def _truncate(text: str, limit: int = _STDERR_LIMIT) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


def build_manifest(segment_names: Sequence[str]) -> str:
    """Render an ffmpeg concat-demuxer manifest listing segments in order."""
    lines = []
    for name in segment_names:
        escaped = str(name).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


class FfmpegEngine:
    """Runs ffmpeg as a subprocess. All operations stream-copy; nothing is re-encoded."""

    def __init__(self, binary: str = FFMPEG_BIN, *, timeout_sec: float = FFMPEG_TIMEOUT_SECONDS) -> None:
        self.binary = binary
        self.timeout_sec = timeout_sec

    def _run(self, args: list[str], *, cwd: Path | None = None) -> None:
        command = [self.binary, "-hide_banner", "-loglevel", "error", "-y", *args]
        logger.debug("ffmpeg command=%s", command)
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=self.timeout_sec,
            )
        except FileNotFoundError as exc:
            raise EngineError(self.binary, "ffmpeg is not installed or not available in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise EngineError(self.binary, f"timed out after {self.timeout_sec}s") from exc

        if completed.returncode != 0:
            raise EngineError(
                self.binary,
                _truncate(completed.stderr) or "no error output",
                returncode=completed.returncode,
            )

    def remux_to_mpegts(self, source: Path, target: Path) -> Path:
        """Repackage an MP4 clip into MPEG-TS so segments can be joined byte-wise."""
        self._run(
            [
                "-i",
                str(source),
                "-c",
                "copy",
                "-bsf:v",
                "h264_mp4toannexb",
                "-f",
                "mpegts",
                str(target),
            ]
        )
        return target

    def concat(self, manifest: Path, target: Path) -> Path:
        """Join the manifest's segments in order into a seekable MP4."""
        self._run(
            [
                "-f",
                "concat",
                "-safe",
                "0",
                "-i",
                manifest.name,
                "-c",
                "copy",
                "-bsf:a",
                "aac_adtstoasc",
                "-movflags",
                "+faststart",
                str(target),
            ],
            cwd=manifest.parent,
        )
        return target
