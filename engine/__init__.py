from .errors import (
    AssemblerBusyError,
    ClipHarvestError,
    CleanupWarning,
    EngineError,
    ItemDownloadError,
    SlugDerivationError,
    UpstreamAuthError,
    UpstreamQueryError,
)
from .windows import FetchWindow, build_fetch_windows

__all__ = [
    "AssemblerBusyError",
    "ClipHarvestError",
    "CleanupWarning",
    "EngineError",
    "FetchWindow",
    "ItemDownloadError",
    "SlugDerivationError",
    "UpstreamAuthError",
    "UpstreamQueryError",
    "build_fetch_windows",
]
