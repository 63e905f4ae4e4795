"""Twitch integration modules."""

from twitch.client import TwitchHelixClient
from twitch.token_cache import AccessToken, AppTokenCache
from twitch.types import ClipRecord

__all__ = ["AccessToken", "AppTokenCache", "ClipRecord", "TwitchHelixClient"]
