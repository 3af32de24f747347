"""Domain records decoded from the resolution service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True, slots=True)
class LinkDetails:
    """A link as known to the resolution service."""

    id: str
    title: str
    alias_path: str
    domain: str
    original_url: str
    deep_link_path: str
    full_url: str
    created_at: datetime
    updated_at: datetime
    deep_link_params: dict[str, str] = field(default_factory=dict[str, str])
    expires_at: datetime | None = None
    visit_id: str | None = None

    def is_expired(self, *, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        reference = now or datetime.now(UTC)
        return self.expires_at < reference

    @property
    def payload_identifier(self) -> str:
        """The identifier a deferred visit of this link should resolve.

        Links created with a full in-app URI as their deep link path resolve that
        URI; everything else falls back to the original web URL.
        """

        if "://" in self.deep_link_path:
            return self.deep_link_path
        return self.original_url


@dataclass(frozen=True, slots=True)
class VisitDetails:
    """Server-side record correlating one click with a link payload."""

    id: str
    created_at: datetime
    updated_at: datetime
    last_seen_at: datetime | None = None
    expires_at: datetime | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    fingerprint: str | None = None
    link: LinkDetails | None = None
