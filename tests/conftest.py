import sys
from pathlib import Path

import pytest


# Ensure tests can import project packages regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)


@pytest.fixture
def make_clip():
    from twitch.types import ClipRecord

    def _make(clip_id: str, **fields) -> ClipRecord:
        payload = {
            "id": clip_id,
            "title": f"Clip {clip_id}",
            "creator_name": "creator",
            "broadcaster_name": "streamer",
            "language": "fr",
            "view_count": 0,
            "duration": 10.0,
            "created_at": "2026-02-01T20:15:00Z",
            "thumbnail_url": f"https://static-cdn.jtvnw.net/twitch-clips-thumbnails-prod/{clip_id}-slug/uuid/preview-480x272.jpg",
        }
        payload.update(fields)
        return ClipRecord.from_api(payload)

    return _make
