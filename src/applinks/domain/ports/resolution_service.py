"""Port for the remote link resolution service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from applinks.domain.creation import CreationRequest
    from applinks.domain.links import LinkDetails, VisitDetails


@runtime_checkable
class ResolutionServiceClient(Protocol):
    """Black-box client for the resolution service.

    Every operation either returns a decoded record or raises a
    ``applinks.domain.errors.ServiceError`` subclass.
    """

    async def retrieve_by_url(self, url: str) -> LinkDetails: ...

    async def fetch_visit_details(self, visit_id: str) -> VisitDetails: ...

    async def create_link(self, request: CreationRequest) -> LinkDetails: ...


__all__ = ["ResolutionServiceClient"]
