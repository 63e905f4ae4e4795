"""Expiry-aware cache for the Twitch app access token."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from twitch.oauth_client import request_app_token

logger = logging.getLogger(__name__)

DEFAULT_MARGIN_SECONDS = 300


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float  # epoch seconds, safety margin already subtracted

    def is_usable(self, now: float) -> bool:
        return now < self.expires_at


class AppTokenCache:
    """Holds the single current app token for one caller-owned context.

    Tokens are refreshed once ``now`` reaches ``issued_at + expires_in - margin``.
    Two callers that observe an expired token at the same time may both run the
    exchange; the exchange is idempotent and the last stored token wins.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        margin_seconds: int = DEFAULT_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
        exchange: Callable[..., dict] | None = None,
        timeout_sec: float = 20,
    ) -> None:
        if not client_id or not client_secret:
            raise RuntimeError("Twitch credentials are required")
        self.client_id = client_id
        self.client_secret = client_secret
        self.margin_seconds = max(0, int(margin_seconds))
        self.timeout_sec = timeout_sec
        self._clock = clock
        self._exchange = exchange or request_app_token
        self._lock = threading.Lock()
        self._token: AccessToken | None = None
        self.exchange_count = 0

    @property
    def current(self) -> AccessToken | None:
        return self._token

    def get_token(self) -> AccessToken:
        token = self._token
        if token is not None and token.is_usable(self._clock()):
            return token

        issued_at = self._clock()
        payload = self._exchange(self.client_id, self.client_secret, timeout=self.timeout_sec)
        expires_in = int(payload.get("expires_in") or 0)
        if expires_in <= self.margin_seconds:
            logger.warning(
                "twitch app token lifetime %ss is within the %ss refresh margin; it will be refreshed on next use",
                expires_in,
                self.margin_seconds,
            )
        fresh = AccessToken(
            value=str(payload["access_token"]),
            expires_at=issued_at + expires_in - self.margin_seconds,
        )
        with self._lock:
            self._token = fresh
            self.exchange_count += 1
        logger.info("twitch app token refreshed expires_in=%s margin=%s", expires_in, self.margin_seconds)
        return fresh

    def get_value(self) -> str:
        return self.get_token().value

    def invalidate(self) -> None:
        """Forget the current token, e.g. after Helix answered 401."""
        with self._lock:
            self._token = None
