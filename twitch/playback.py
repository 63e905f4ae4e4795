"""Clip media locator derivation: thumbnail URL -> slug -> signed playback URL."""

from __future__ import annotations

import re
import urllib.parse
from typing import Any

import requests

from engine.errors import ItemDownloadError, SlugDerivationError

TWITCH_GQL_URL = "https://gql.twitch.tv/gql"
# Public client id of the Twitch web player; the persisted query only accepts it.
TWITCH_WEB_CLIENT_ID = "kimne78kx3ncx6brgo4mv6wki5h1ko"
_CLIP_ACCESS_TOKEN_HASH = "36b89d2507fce29e5ca551df756d27c1cfe079e2609642b4390aa4c35796eb11"

# https://static-cdn.jtvnw.net/twitch-clips-thumbnails-prod/{slug}/{uuid}/preview-480x272.jpg
_CURRENT_THUMBNAIL_RE = re.compile(r"twitch-clips-thumbnails-prod/([^/]+)/")
# https://clips-media-assets2.twitch.tv/{slug}-preview-480x272.jpg
_LEGACY_THUMBNAIL_RE = re.compile(r"clips-media-assets2\.twitch\.tv/([^/]+?)-preview-")


def extract_slug(thumbnail_url: str) -> str:
    """Return the clip slug embedded in a thumbnail URL.

    Raises:
        SlugDerivationError: When neither the current nor the legacy CDN layout matches.
    """
    url = thumbnail_url or ""
    for pattern in (_CURRENT_THUMBNAIL_RE, _LEGACY_THUMBNAIL_RE):
        match = pattern.search(url)
        if match:
            return match.group(1)
    raise SlugDerivationError(url)


def _clip_access_token_query(slug: str) -> list[dict[str, Any]]:
    return [
        {
            "operationName": "VideoAccessToken_Clip",
            "variables": {"slug": slug},
            "extensions": {
                "persistedQuery": {
                    "version": 1,
                    "sha256Hash": _CLIP_ACCESS_TOKEN_HASH,
                }
            },
        }
    ]


def build_playback_url(source_url: str, signature: str, token: str) -> str:
    sig = urllib.parse.quote(signature, safe="")
    tok = urllib.parse.quote(token, safe="")
    return f"{source_url}?sig={sig}&token={tok}"


def resolve_playback_url(
    slug: str,
    *,
    session: requests.Session | None = None,
    timeout: float = 20,
) -> str:
    """Exchange a clip slug for a signed, time-limited MP4 URL (best quality)."""
    http = session or requests
    response = http.post(
        TWITCH_GQL_URL,
        json=_clip_access_token_query(slug),
        headers={"Client-Id": TWITCH_WEB_CLIENT_ID, "Content-Type": "application/json"},
        timeout=timeout,
    )
    if response.status_code != 200:
        raise ItemDownloadError(f"playback token request failed ({response.status_code}) slug={slug}")

    payload = response.json()
    first = payload[0] if isinstance(payload, list) and payload else {}
    clip = ((first or {}).get("data") or {}).get("clip")
    if not isinstance(clip, dict):
        raise ItemDownloadError(f"clip not found slug={slug}")
    qualities = clip.get("videoQualities") or []
    if not qualities:
        raise ItemDownloadError(f"clip has no video qualities slug={slug}")
    access = clip.get("playbackAccessToken") or {}
    source_url = qualities[0].get("sourceURL")
    if not source_url:
        raise ItemDownloadError(f"clip quality has no sourceURL slug={slug}")
    return build_playback_url(
        str(source_url),
        str(access.get("signature") or ""),
        str(access.get("value") or ""),
    )
