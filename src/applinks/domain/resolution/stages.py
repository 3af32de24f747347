"""Built-in resolution stages."""

from __future__ import annotations

import time
from logging import getLogger
from typing import TYPE_CHECKING

from applinks.domain.errors import ServiceError
from applinks.domain.identifiers import Identifier
from applinks.domain.resolution.pipeline import TransformStage

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from applinks.domain.links import LinkDetails
    from applinks.domain.ports.resolution_service import ResolutionServiceClient
    from applinks.domain.resolution.context import ResolutionContext
    from applinks.domain.resolution.pipeline import Continuation

log = getLogger(__name__)


def _join_host_and_path(host: str, path: str) -> str:
    if not host:
        return path
    if not path or path == "/":
        return host
    return f"{host}/{path.lstrip('/')}"


class SchemeStage(TransformStage):
    """Resolve custom-scheme links (``myapp://catalog/42?x=1``) locally.

    The host is part of the route, so the example above resolves to the path
    ``catalog/42``.
    """

    def __init__(self, supported_schemes: Iterable[str]) -> None:
        self._schemes = frozenset(scheme.lower() for scheme in supported_schemes)

    def can_handle(self, identifier: Identifier) -> bool:
        return bool(identifier.scheme) and identifier.scheme in self._schemes

    async def apply(self, context: ResolutionContext, identifier: Identifier) -> ResolutionContext:
        log.debug("Processing custom scheme link: %s", identifier)
        context.resolved_path = _join_host_and_path(identifier.host, identifier.path)
        context.resolved_params.update(identifier.query_params)
        context.rewritten_identifier = identifier
        log.debug(
            "Custom scheme link processed - path: %s, params: %s",
            context.resolved_path,
            context.resolved_params,
        )
        return context


class RemoteDomainStage(TransformStage):
    """Resolve web links on configured domains through the resolution service.

    Service failures degrade to a local reading of the web link instead of
    failing the resolution.
    """

    def __init__(
        self,
        *,
        supported_domains: Iterable[str],
        client: ResolutionServiceClient,
        native_schemes: Sequence[str] = (),
    ) -> None:
        self._domains = tuple(domain.strip().lower() for domain in supported_domains)
        self._client = client
        self._native_schemes = tuple(native_schemes)

    def can_handle(self, identifier: Identifier) -> bool:
        if not identifier.is_web or not identifier.host:
            return False
        return any(identifier.matches_domain(domain) for domain in self._domains)

    async def apply(self, context: ResolutionContext, identifier: Identifier) -> ResolutionContext:
        log.debug("Processing universal link: %s", identifier)
        try:
            link = await self._client.retrieve_by_url(str(identifier))
        except ServiceError as exc:
            log.warning("Failed to retrieve link details, using fallback: %s", exc)
            return self._apply_fallback(context, identifier, exc)
        return self._apply_link(context, link)

    def _apply_link(self, context: ResolutionContext, link: LinkDetails) -> ResolutionContext:
        context.resolved_path = link.deep_link_path
        context.resolved_params.update(link.deep_link_params)
        context.metadata.update(
            {
                "link_type": "universal",
                "link_id": link.id,
                "link_title": link.title,
                "original_url": link.original_url,
                "domain": link.domain,
                "full_url": link.full_url,
                "created_at": link.created_at.isoformat(),
                "updated_at": link.updated_at.isoformat(),
            }
        )
        if link.visit_id is not None:
            context.metadata["visit_id"] = link.visit_id
        if link.expires_at is not None:
            context.metadata["expires_at"] = link.expires_at.isoformat()

        if self._native_schemes:
            context.rewritten_identifier = self._rewrite(
                context.resolved_path, context.resolved_params
            )
        log.debug(
            "Universal link processed - path: %s, params: %s",
            context.resolved_path,
            context.resolved_params,
        )
        return context

    def _rewrite(self, path: str, params: dict[str, str]) -> Identifier:
        segments = [segment for segment in path.split("/") if segment]
        host = segments[0] if segments else ""
        remainder = "/".join(segments[1:])
        return Identifier.build(
            scheme=self._native_schemes[0],
            host=host,
            path=remainder,
            params=params,
        )

    @staticmethod
    def _apply_fallback(
        context: ResolutionContext,
        identifier: Identifier,
        error: ServiceError,
    ) -> ResolutionContext:
        context.resolved_path = identifier.path
        context.resolved_params.update(identifier.query_params)
        context.metadata["link_type"] = "universal_fallback"
        context.metadata["host"] = identifier.host
        context.metadata["error"] = str(error)
        return context


class InstrumentationStage:
    """Record timing around everything registered after it.

    It never claims an identifier; it wraps the continuation instead, writing the
    start time before downstream stages run and the completion time and duration
    into the context they return.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def can_handle(self, identifier: Identifier) -> bool:
        _ = identifier
        return False

    async def process(
        self,
        context: ResolutionContext,
        identifier: Identifier,
        call_next: Continuation,
    ) -> ResolutionContext:
        started_ms = int(self._clock() * 1000)
        log.debug("Starting link processing: %s", identifier)
        context.metadata["processing_started"] = started_ms

        result = await call_next(context)

        completed_ms = int(self._clock() * 1000)
        duration_ms = completed_ms - started_ms
        log.debug("Finished link processing: %s (took %sms)", identifier, duration_ms)
        result.metadata["processing_completed"] = completed_ms
        result.metadata["processing_duration_ms"] = duration_ms
        return result
