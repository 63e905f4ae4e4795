"""Windowed aggregation of Twitch clips.

Helix stops handing out pagination cursors after roughly one thousand results
per query, so a single query over several days silently undercounts. The
lookback period is split into small windows, every window is paginated to
exhaustion, windows run in fixed-size parallel batches, and the union is
deduplicated by clip id and ranked by view count.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Protocol, Sequence
from zoneinfo import ZoneInfo

import requests

from engine.errors import UpstreamQueryError
from engine.events import log_event
from engine.windows import FetchWindow, build_fetch_windows
from twitch.client import ClipsPage
from twitch.types import ClipRecord

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (UpstreamQueryError, requests.RequestException)


class _ClipsSource(Protocol):
    def get_clips_page(
        self,
        game_id: str,
        started_at: str,
        ended_at: str,
        *,
        first: int = 100,
        after: str | None = None,
    ) -> ClipsPage:
        """Return one page of clips and the next cursor, if any."""


@dataclass
class WindowResult:
    """Tagged per-window outcome: ``clips`` when ok, ``error`` when failed."""

    window: FetchWindow
    clips: list[ClipRecord] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class AggregationResult:
    clips: list[ClipRecord]
    window_count: int
    failed_windows: list[WindowResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.clips)

    @property
    def total_views(self) -> int:
        return sum(clip.view_count for clip in self.clips)

    @property
    def complete(self) -> bool:
        return not self.failed_windows

    def to_payload(self) -> dict:
        return {
            "clips": [clip.to_dict() for clip in self.clips],
            "total": self.total,
            "totalViews": self.total_views,
        }


def fetch_window(
    client: _ClipsSource,
    window: FetchWindow,
    *,
    game_id: str,
    language: str,
    page_size: int = 100,
) -> list[ClipRecord]:
    """Paginate one window to exhaustion and keep clips in ``language``.

    Stops when a page carries no cursor or no items. Each cursor is used once.
    Any failing page fails the whole window.
    """
    clips: list[ClipRecord] = []
    current = window
    pages = 0
    while True:
        page = client.get_clips_page(
            game_id,
            current.started_at,
            current.ended_at,
            first=page_size,
            after=current.cursor,
        )
        pages += 1
        items = page.get("data") or []
        for raw in items:
            if raw.get("language") == language:
                clips.append(ClipRecord.from_api(raw))

        cursor = page.get("cursor")
        if not cursor or not items:
            break
        current = current.with_cursor(cursor)

    logger.debug("window=%s pages=%d matched=%d", window, pages, len(clips))
    return clips


def _fetch_window_with_retries(
    client: _ClipsSource,
    window: FetchWindow,
    *,
    game_id: str,
    language: str,
    page_size: int,
    retries: int,
    backoff_seconds: float,
) -> list[ClipRecord]:
    attempt = 0
    while True:
        try:
            return fetch_window(client, window, game_id=game_id, language=language, page_size=page_size)
        except _RETRYABLE_ERRORS as exc:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning("window=%s attempt=%d failed (%s); retrying", window, attempt, exc)
            time.sleep(backoff_seconds * attempt)


def dedupe_clips(clips: Iterable[ClipRecord]) -> list[ClipRecord]:
    """Drop repeated clip ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[ClipRecord] = []
    for clip in clips:
        if clip.id in seen:
            continue
        seen.add(clip.id)
        unique.append(clip)
    return unique


def rank_clips(clips: Sequence[ClipRecord]) -> list[ClipRecord]:
    """Most viewed first; ties keep their merge order."""
    return sorted(clips, key=lambda clip: clip.view_count, reverse=True)


def merge_window_results(results: Sequence[WindowResult]) -> list[ClipRecord]:
    merged: list[ClipRecord] = []
    for result in results:
        if result.ok:
            merged.extend(result.clips)
    return rank_clips(dedupe_clips(merged))


async def _run_batch(
    client: _ClipsSource,
    batch: Sequence[FetchWindow],
    *,
    game_id: str,
    language: str,
    page_size: int,
    retries: int,
    backoff_seconds: float,
) -> list[WindowResult]:
    outcomes = await asyncio.gather(
        *(
            asyncio.to_thread(
                _fetch_window_with_retries,
                client,
                window,
                game_id=game_id,
                language=language,
                page_size=page_size,
                retries=retries,
                backoff_seconds=backoff_seconds,
            )
            for window in batch
        ),
        return_exceptions=True,
    )
    results: list[WindowResult] = []
    for window, outcome in zip(batch, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            results.append(WindowResult(window=window, error=outcome))
        else:
            results.append(WindowResult(window=window, clips=outcome))
    return results


async def aggregate(
    client: _ClipsSource,
    *,
    game_id: str,
    language: str,
    lookback_days: int = 3,
    window_minutes: int = 30,
    concurrency: int = 15,
    now: datetime | None = None,
    tz: str | ZoneInfo | timezone = timezone.utc,
    page_size: int = 100,
    strict: bool = True,
    window_retries: int = 0,
    retry_backoff_seconds: float = 1.0,
) -> AggregationResult:
    """Fetch, deduplicate and rank every ``language`` clip of ``game_id``.

    Windows run ``concurrency`` at a time; batches run one after another. In
    strict mode the first failed window (in window order) aborts the run and its
    error propagates. Otherwise failed windows are reported on the result and
    the remaining windows are merged.
    """
    if concurrency <= 0:
        raise ValueError("concurrency must be positive")
    now = now or datetime.now(timezone.utc)
    windows = build_fetch_windows(now, lookback_days, window_minutes, tz=tz)

    log_event(
        logging.INFO,
        "aggregation_started",
        game_id=game_id,
        language=language,
        windows=len(windows),
        concurrency=concurrency,
        strict=strict,
    )
    started = time.monotonic()

    results: list[WindowResult] = []
    for offset in range(0, len(windows), concurrency):
        batch = windows[offset : offset + concurrency]
        batch_results = await _run_batch(
            client,
            batch,
            game_id=game_id,
            language=language,
            page_size=page_size,
            retries=max(0, window_retries),
            backoff_seconds=retry_backoff_seconds,
        )
        for result in batch_results:
            if result.ok:
                continue
            log_event(
                logging.WARNING,
                "aggregation_window_failed",
                window=str(result.window),
                error=str(result.error),
            )
            if strict:
                raise result.error  # type: ignore[misc]
        results.extend(batch_results)

    failed = [result for result in results if not result.ok]
    clips = merge_window_results(results)
    aggregation = AggregationResult(clips=clips, window_count=len(windows), failed_windows=failed)
    log_event(
        logging.INFO,
        "aggregation_finished",
        clips=aggregation.total,
        total_views=aggregation.total_views,
        failed_windows=len(failed),
        elapsed_sec=round(time.monotonic() - started, 2),
    )
    return aggregation


def aggregate_clips(client: _ClipsSource, **kwargs) -> AggregationResult:
    """Blocking wrapper around :func:`aggregate` for scripts."""
    return asyncio.run(aggregate(client, **kwargs))
