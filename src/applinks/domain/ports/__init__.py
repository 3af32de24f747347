"""Domain port definitions for adapters."""

from __future__ import annotations

from .install_referrer import InstallReferrerSource, ReferrerDetails
from .persistence import AppStateStore
from .resolution_service import ResolutionServiceClient

__all__ = [
    "AppStateStore",
    "InstallReferrerSource",
    "ReferrerDetails",
    "ResolutionServiceClient",
]
