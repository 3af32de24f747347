"""Port for the platform install-referrer service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ReferrerDetails:
    """What the platform recorded about the referral that led to this install."""

    referrer: str
    click_timestamp_seconds: int = 0
    install_begin_timestamp_seconds: int = 0
    instant_experience_launched: bool = False


@runtime_checkable
class InstallReferrerSource(Protocol):
    """Connection-oriented access to the install referrer.

    ``connect`` raises ``UnsupportedPlatformError`` when the service cannot be
    reached; ``disconnect`` must be safe to call after a failed ``connect``.
    """

    def connect(self) -> None: ...

    def get_referrer(self) -> ReferrerDetails: ...

    def disconnect(self) -> None: ...


__all__ = ["InstallReferrerSource", "ReferrerDetails"]
