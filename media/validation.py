"""Media validation helpers."""

from __future__ import annotations

import logging
from typing import Iterable

from media.ffprobe import get_media_duration

logger = logging.getLogger(__name__)


def expected_assembly_seconds(durations: Iterable[float]) -> float:
    return float(sum(max(0.0, float(value or 0.0)) for value in durations))


def validate_duration(file_path: str, expected_seconds: float, tolerance_seconds: float = 2.0) -> bool:
    """Check that a media file's duration is within tolerance of ``expected_seconds``.

    Returns ``False`` when the duration is outside tolerance, when the inputs are
    negative, or when probing fails. Probe errors are logged, never raised.
    """
    if expected_seconds < 0:
        logger.warning("Duration validation failed: expected_seconds must be non-negative")
        return False
    if tolerance_seconds < 0:
        logger.warning("Duration validation failed: tolerance_seconds must be non-negative")
        return False

    try:
        actual_seconds = get_media_duration(file_path)
    except Exception:
        logger.exception("Failed to probe media duration for path=%s", file_path)
        return False

    within = abs(actual_seconds - expected_seconds) <= tolerance_seconds
    if not within:
        logger.warning(
            "duration_mismatch path=%s actual=%.2fs expected=%.2fs tolerance=%.2f",
            file_path,
            actual_seconds,
            expected_seconds,
            tolerance_seconds,
        )
    return within
