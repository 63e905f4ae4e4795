"""Bulk export of clips as independent files inside one ZIP archive.

Unlike assembly, a failed clip does not abort the export: it is left out of
the archive and reported in ``BundleResult.failed``.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence
from zoneinfo import ZoneInfo

from config.settings import DOWNLOAD_BATCH_SIZE, TIMEZONE
from download.fetcher import fetch_or_raise
from engine.events import log_event
from twitch.types import ClipRecord

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r'[/\\?%*:|"<>]')


@dataclass
class BundleResult:
    archive: bytes
    included: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.included) + len(self.failed)


def _safe(value: str) -> str:
    return _UNSAFE_CHARS_RE.sub("-", value or "").strip()


def clip_filename(clip: ClipRecord, *, tz: str = TIMEZONE) -> str:
    """``{title} - {creator} - {DD-MM-YYYY} {HH}h{MM}.mp4`` in the configured time zone."""
    stamp = ""
    if clip.created_at:
        try:
            created = datetime.fromisoformat(clip.created_at.replace("Z", "+00:00"))
        except ValueError:
            created = None
        if created is not None:
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            local = created.astimezone(ZoneInfo(tz))
            stamp = f" - {local:%d-%m-%Y} {local:%H}h{local:%M}"
    title = _safe(clip.title) or clip.id
    creator = _safe(clip.creator_name) or "unknown"
    return f"{title} - {creator}{stamp}.mp4"


def _unique_name(name: str, clip: ClipRecord, used: set[str]) -> str:
    if name not in used:
        return name
    stem = name[: -len(".mp4")] if name.endswith(".mp4") else name
    return f"{stem} ({clip.id}).mp4"


async def export_bundle(
    fetcher,
    clips: Sequence[ClipRecord],
    *,
    batch_size: int = DOWNLOAD_BATCH_SIZE,
    on_progress: Callable[[int, int], None] | None = None,
) -> BundleResult:
    """Download ``clips`` in parallel batches and zip every one that succeeded."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    total = len(clips)
    buffer = io.BytesIO()
    result = BundleResult(archive=b"")
    used_names: set[str] = set()
    done = 0

    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
        for offset in range(0, total, batch_size):
            batch = clips[offset : offset + batch_size]
            outcomes = await asyncio.gather(
                *(
                    asyncio.to_thread(fetch_or_raise, fetcher, clip, offset + position)
                    for position, clip in enumerate(batch)
                ),
                return_exceptions=True,
            )
            for clip, outcome in zip(batch, outcomes):
                done += 1
                if isinstance(outcome, Exception):
                    logger.warning("export skipped clip=%s err=%s", clip.id, outcome)
                    result.failed.append(clip.id)
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                name = _unique_name(clip_filename(clip), clip, used_names)
                used_names.add(name)
                archive.writestr(name, outcome)
                result.included.append(clip.id)
            if on_progress is not None:
                on_progress(done, total)

    result.archive = buffer.getvalue()
    log_event(
        logging.INFO,
        "export_finished",
        included=len(result.included),
        failed=len(result.failed),
        bytes=len(result.archive),
    )
    return result
