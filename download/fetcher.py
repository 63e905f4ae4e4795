"""Fetch the MP4 bytes of a clip from its thumbnail-derived playback URL."""

from __future__ import annotations

import logging

import requests

from engine.errors import ItemDownloadError
from twitch.playback import extract_slug, resolve_playback_url
from twitch.types import ClipRecord

logger = logging.getLogger(__name__)


class ClipMediaFetcher:
    """Resolves and downloads clip media. Blocking; callers run it in threads."""

    def __init__(self, *, timeout_sec: float = 20, session: requests.Session | None = None) -> None:
        self.timeout_sec = timeout_sec
        self._session = session or requests.Session()

    def playback_url(self, clip: ClipRecord) -> str:
        slug = extract_slug(clip.thumbnail_url)
        return resolve_playback_url(slug, session=self._session, timeout=self.timeout_sec)

    def fetch(self, clip: ClipRecord) -> bytes:
        """Return the clip's MP4 bytes.

        Raises:
            SlugDerivationError: The thumbnail URL matches no known layout.
            ItemDownloadError: Playback resolution or the media request failed.
        """
        url = self.playback_url(clip)
        try:
            response = self._session.get(url, timeout=self.timeout_sec)
        except requests.RequestException as exc:
            raise ItemDownloadError(str(exc), clip_id=clip.id) from exc
        if response.status_code != 200:
            raise ItemDownloadError(f"media request failed ({response.status_code})", clip_id=clip.id)
        data = response.content
        if not data:
            raise ItemDownloadError("media response was empty", clip_id=clip.id)
        logger.debug("clip=%s bytes=%d", clip.id, len(data))
        return data


def fetch_or_raise(fetcher: "ClipMediaFetcher", clip: ClipRecord, index: int) -> bytes:
    """Fetch one clip, tagging download failures with its position in the input."""
    try:
        return fetcher.fetch(clip)
    except ItemDownloadError as exc:
        raise ItemDownloadError(exc.reason, index=index, clip_id=clip.id) from exc
    except requests.RequestException as exc:
        raise ItemDownloadError(str(exc), index=index, clip_id=clip.id) from exc
