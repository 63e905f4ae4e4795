"""Twitch OAuth client helpers."""

from __future__ import annotations

import requests

from engine.errors import UpstreamAuthError

TWITCH_TOKEN_URL = "https://id.twitch.tv/oauth2/token"


def request_app_token(
    client_id: str,
    client_secret: str,
    *,
    timeout: float = 20,
) -> dict:
    """Exchange the application credential for an app access token payload.

    Returns:
        Parsed JSON token response (``access_token``, ``expires_in``, ``token_type``).

    Raises:
        UpstreamAuthError: When Twitch cannot be reached, answers with a
            non-200 status, or the payload carries no ``access_token``.
    """
    try:
        response = requests.post(
            TWITCH_TOKEN_URL,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "client_credentials",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise UpstreamAuthError(None, str(exc)) from exc
    if response.status_code != 200:
        detail = (response.text or "").strip()[:200] or None
        raise UpstreamAuthError(response.status_code, detail)
    payload = response.json()
    if not payload.get("access_token"):
        raise UpstreamAuthError(response.status_code, "token response missing access_token")
    return payload
