"""Structured Twitch clip records."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ClipRecord:
    """One Helix clip. ``id`` is unique within an aggregation result."""

    id: str
    title: str = ""
    broadcaster_id: str = ""
    broadcaster_name: str = ""
    creator_id: str = ""
    creator_name: str = ""
    language: str = ""
    created_at: str = ""
    duration: float = 0.0
    view_count: int = 0
    thumbnail_url: str = ""
    game_id: str = ""
    url: str = ""
    embed_url: str = ""
    video_id: str = ""
    vod_offset: int | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "ClipRecord":
        """Build a record from a Helix ``/clips`` item (or a ``to_dict`` payload)."""
        clip_id = str(raw.get("id") or "").strip()
        if not clip_id:
            raise ValueError("clip item is missing an id")
        vod_offset = raw.get("vod_offset")
        return cls(
            id=clip_id,
            title=str(raw.get("title") or ""),
            broadcaster_id=str(raw.get("broadcaster_id") or ""),
            broadcaster_name=str(raw.get("broadcaster_name") or ""),
            creator_id=str(raw.get("creator_id") or ""),
            creator_name=str(raw.get("creator_name") or ""),
            language=str(raw.get("language") or ""),
            created_at=str(raw.get("created_at") or ""),
            duration=_as_float(raw.get("duration")),
            view_count=_as_int(raw.get("view_count")),
            thumbnail_url=str(raw.get("thumbnail_url") or ""),
            game_id=str(raw.get("game_id") or ""),
            url=str(raw.get("url") or ""),
            embed_url=str(raw.get("embed_url") or ""),
            video_id=str(raw.get("video_id") or ""),
            vod_offset=_as_int(vod_offset) if vod_offset is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
