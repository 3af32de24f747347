"""Short link creation: request validation and response mapping."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from applinks.domain.errors import ValidationError

if TYPE_CHECKING:
    from datetime import datetime

    from applinks.domain.links import LinkDetails
    from applinks.domain.ports.resolution_service import ResolutionServiceClient

log = getLogger(__name__)


class PathStrategy(StrEnum):
    """How the service generates the public path of a new link."""

    UNGUESSABLE = "UNGUESSABLE"  # 32 random characters, for sensitive links
    SHORT = "SHORT"  # 4-6 characters, for sharing


@dataclass(frozen=True, slots=True)
class CreationRequest:
    target_url: str | None
    domain: str | None
    title: str | None = None
    deep_link_path: str | None = None
    deep_link_params: dict[str, str] = field(default_factory=dict[str, str])
    expires_at: datetime | None = None
    path_strategy: PathStrategy = PathStrategy.UNGUESSABLE

    def validated(self) -> CreationRequest:
        """Return a copy with defaults applied, or raise ``ValidationError``."""

        target_url = (self.target_url or "").strip()
        domain = (self.domain or "").strip()
        missing = [
            name for name, value in (("target_url", target_url), ("domain", domain)) if not value
        ]
        if missing:
            raise ValidationError(f"Missing required link fields: {', '.join(missing)}")
        parts = urlsplit(target_url)
        if not parts.scheme or not parts.netloc:
            raise ValidationError(f"target_url must be an absolute URL: {target_url!r}")

        title = (self.title or "").strip() or target_url
        return CreationRequest(
            target_url=target_url,
            domain=domain,
            title=title,
            deep_link_path=self.deep_link_path or None,
            deep_link_params=dict(self.deep_link_params),
            expires_at=self.expires_at,
            path_strategy=self.path_strategy,
        )


@dataclass(frozen=True, slots=True)
class CreationResult:
    full_url: str
    link_id: str
    alias_path: str
    expires_at: datetime | None = None

    @classmethod
    def from_link(cls, link: LinkDetails) -> CreationResult:
        return cls(
            full_url=link.full_url,
            link_id=link.id,
            alias_path=link.alias_path,
            expires_at=link.expires_at,
        )


class LinkCreator:
    """Validate creation requests and delegate them to the resolution service.

    Every call is a fresh request: no retries and no idempotency key.
    """

    def __init__(self, client: ResolutionServiceClient) -> None:
        self._client = client

    async def create(self, request: CreationRequest) -> CreationResult:
        valid = request.validated()
        log.debug("Creating %s link with title: %s", valid.path_strategy, valid.title)
        link = await self._client.create_link(valid)
        return CreationResult.from_link(link)
