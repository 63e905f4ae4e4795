"""Twitch Helix client for paginated clip queries."""

from __future__ import annotations

import logging
from typing import Any, TypedDict

import requests

from engine.errors import UpstreamQueryError
from twitch.token_cache import AppTokenCache

logger = logging.getLogger(__name__)


class ClipsPage(TypedDict):
    """One page of ``/helix/clips`` results."""

    data: list[dict[str, Any]]
    cursor: str | None


class TwitchHelixClient:
    """Client for reading clip pages from the Helix API."""

    _CLIPS_URL = "https://api.twitch.tv/helix/clips"

    def __init__(
        self,
        tokens: AppTokenCache,
        *,
        timeout_sec: float = 20,
        session: requests.Session | None = None,
    ) -> None:
        self.tokens = tokens
        self.timeout_sec = timeout_sec
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.tokens.get_value()}",
            "Client-Id": self.tokens.client_id,
        }

    def _get(self, url: str, params: dict[str, Any], window: Any) -> requests.Response:
        try:
            return self._session.get(url, params=params, headers=self._headers(), timeout=self.timeout_sec)
        except requests.RequestException as exc:
            raise UpstreamQueryError(None, window, detail=str(exc)) from exc

    def _request_json(self, url: str, params: dict[str, Any], *, window: Any = None) -> dict[str, Any]:
        response = self._get(url, params, window)
        if response.status_code == 401:
            self.tokens.invalidate()
            response = self._get(url, params, window)
        if response.status_code != 200:
            raise UpstreamQueryError(response.status_code, window)
        return response.json()

    def get_clips_page(
        self,
        game_id: str,
        started_at: str,
        ended_at: str,
        *,
        first: int = 100,
        after: str | None = None,
    ) -> ClipsPage:
        """Fetch one page of clips for ``game_id`` created in ``[started_at, ended_at)``."""
        params: dict[str, Any] = {
            "game_id": game_id,
            "first": first,
            "started_at": started_at,
            "ended_at": ended_at,
        }
        if after:
            params["after"] = after
        payload = self._request_json(
            self._CLIPS_URL,
            params,
            window=f"[{started_at}, {ended_at})",
        )
        pagination = payload.get("pagination") or {}
        cursor = pagination.get("cursor") or None
        return {"data": list(payload.get("data") or []), "cursor": cursor}
