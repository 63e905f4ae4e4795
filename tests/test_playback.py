from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from engine.errors import ItemDownloadError, SlugDerivationError
from twitch.playback import TWITCH_WEB_CLIENT_ID, build_playback_url, extract_slug, resolve_playback_url


@pytest.mark.parametrize(
    "url, slug",
    [
        (
            "https://static-cdn.jtvnw.net/twitch-clips-thumbnails-prod/BraveTastyOtter-abc123/0f1e2d/preview-480x272.jpg",
            "BraveTastyOtter-abc123",
        ),
        ("https://clips-media-assets2.twitch.tv/AT-cm%7C123456-preview-480x272.jpg", "AT-cm%7C123456"),
        ("https://clips-media-assets2.twitch.tv/SmallDog-preview-preview-480x272.jpg", "SmallDog"),
    ],
)
def test_extract_slug_supports_current_and_legacy_layouts(url: str, slug: str) -> None:
    assert extract_slug(url) == slug


@pytest.mark.parametrize("url", ["", "https://example.com/thumb.jpg", "https://static-cdn.jtvnw.net/other/x/"])
def test_extract_slug_fails_explicitly(url: str) -> None:
    with pytest.raises(SlugDerivationError):
        extract_slug(url)


class _FakeSession:
    def __init__(self, response) -> None:
        self.response = response
        self.calls: list[dict[str, Any]] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        return self.response


def _gql(clip: dict[str, Any] | None, status_code: int = 200):
    return SimpleNamespace(status_code=status_code, json=lambda: [{"data": {"clip": clip}}])


def test_resolve_playback_url_signs_best_quality() -> None:
    session = _FakeSession(
        _gql(
            {
                "playbackAccessToken": {"signature": "s/ig", "value": '{"a":1}'},
                "videoQualities": [
                    {"quality": "1080", "sourceURL": "https://production.assets.clips.twitchcdn.net/best.mp4"},
                    {"quality": "720", "sourceURL": "https://production.assets.clips.twitchcdn.net/low.mp4"},
                ],
            }
        )
    )

    url = resolve_playback_url("Slug", session=session)

    assert url == "https://production.assets.clips.twitchcdn.net/best.mp4?sig=s%2Fig&token=%7B%22a%22%3A1%7D"
    call = session.calls[0]
    assert call["headers"]["Client-Id"] == TWITCH_WEB_CLIENT_ID
    assert call["json"][0]["variables"] == {"slug": "Slug"}
    assert call["json"][0]["operationName"] == "VideoAccessToken_Clip"


@pytest.mark.parametrize(
    "response",
    [
        _gql(None),
        _gql({"playbackAccessToken": {}, "videoQualities": []}),
        _gql({"videoQualities": [{"quality": "720"}]}, status_code=500),
    ],
)
def test_resolve_playback_url_failures_raise(response) -> None:
    with pytest.raises(ItemDownloadError):
        resolve_playback_url("Slug", session=_FakeSession(response))


def test_build_playback_url_encodes_everything() -> None:
    assert build_playback_url("https://x/y.mp4", "a b", "c&d") == "https://x/y.mp4?sig=a%20b&token=c%26d"
