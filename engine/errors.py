"""Error taxonomy shared by the aggregation and assembly pipelines."""

from __future__ import annotations

from typing import Any


class ClipHarvestError(Exception):
    """Base class for pipeline-level failures."""


class UpstreamAuthError(ClipHarvestError):
    """The client-credentials exchange failed or returned a non-success status.

    ``status_code`` is ``None`` when Twitch could not be reached at all.
    """

    def __init__(self, status_code: int | None, detail: str | None = None) -> None:
        self.status_code = status_code
        self.detail = detail
        message = "Twitch token request failed"
        if status_code is not None:
            message = f"{message} ({status_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UpstreamQueryError(ClipHarvestError):
    """A paginated clip query failed in transport or returned a non-success status."""

    def __init__(self, status_code: int | None, window: Any = None, *, detail: str | None = None) -> None:
        self.status_code = status_code
        self.window = window
        self.detail = detail
        message = "Twitch clips request failed"
        if status_code is not None:
            message = f"{message} ({status_code})"
        if window is not None:
            message = f"{message} window={window}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SlugDerivationError(ClipHarvestError):
    """No known thumbnail URL layout matched."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"could not extract clip slug from url: {url}")


class ItemDownloadError(ClipHarvestError):
    """Fetching the media bytes of one clip failed."""

    def __init__(self, reason: str, *, index: int | None = None, clip_id: str | None = None) -> None:
        self.reason = reason
        self.index = index
        self.clip_id = clip_id
        prefix = "clip download failed"
        if index is not None:
            prefix = f"{prefix} index={index}"
        if clip_id:
            prefix = f"{prefix} clip_id={clip_id}"
        super().__init__(f"{prefix}: {reason}")


class EngineError(ClipHarvestError):
    """The external media engine reported a failure."""

    def __init__(self, command: str, reason: str, *, returncode: int | None = None) -> None:
        self.command = command
        self.reason = reason
        self.returncode = returncode
        super().__init__(f"{command} failed (rc={returncode}): {reason}")


class AssemblerBusyError(ClipHarvestError):
    """An assembly job is already active on this assembler."""


class CleanupWarning(UserWarning):
    """A temporary artifact could not be deleted. Never fatal."""
