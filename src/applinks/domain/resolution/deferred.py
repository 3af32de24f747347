"""First-launch recovery of a link that was clicked before the app was installed.

On the first launch only, the install referrer is read, searched for a visit id,
deduplicated against visits that were already resolved, looked up on the
resolution service, and the link payload of that visit is resolved exactly like
an identifier received at runtime. Whatever happens, the first-launch flag is
marked complete afterwards so recovery is attempted at most once.
"""

from __future__ import annotations

import asyncio
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from applinks.domain.errors import (
    AppLinksError,
    ExpiredLinkError,
    NoHandlerError,
    NotFoundError,
    ResolutionError,
    ServiceError,
    UnsupportedPlatformError,
    ValidationError,
)
from applinks.domain.identifiers import Identifier
from applinks.domain.resolution.context import ResolutionContext

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from applinks.domain.links import VisitDetails
    from applinks.domain.ports.install_referrer import InstallReferrerSource, ReferrerDetails
    from applinks.domain.ports.persistence import AppStateStore
    from applinks.domain.ports.resolution_service import ResolutionServiceClient
    from applinks.domain.processed_ids import ProcessedIdentifierStore
    from applinks.domain.resolution.context import ResolutionResult
    from applinks.domain.resolution.listeners import ListenerRegistry
    from applinks.domain.resolution.pipeline import ResolutionPipeline

log = getLogger(__name__)

REFERRER_PARAM_VISIT_ID = "applinks_visit_id"


class RecoveryState(StrEnum):
    IDLE = "idle"
    SKIPPED = "skipped"
    CONNECTING = "connecting"
    REFERRER_AVAILABLE = "referrer_available"
    UNSUPPORTED = "unsupported"
    SERVICE_ERROR = "service_error"
    PARSING_PAYLOAD = "parsing_payload"
    PAYLOAD_FOUND = "payload_found"
    NO_PAYLOAD = "no_payload"
    DEDUPE_CHECK = "dedupe_check"
    ALREADY_PROCESSED = "already_processed"
    NEW_VISIT = "new_visit"
    REMOTE_VISIT_LOOKUP = "remote_visit_lookup"
    VISIT_RESOLVED = "visit_resolved"
    VISIT_LOOKUP_FAILED = "visit_lookup_failed"
    RESOLVED = "resolved"
    FAILED = "failed"


# Terminal outcomes that are expected in normal operation and not reported as errors.
QUIET_STATES = frozenset(
    {RecoveryState.SKIPPED, RecoveryState.NO_PAYLOAD, RecoveryState.ALREADY_PROCESSED}
)


@dataclass(slots=True)
class RecoveryOutcome:
    """Terminal state of one recovery attempt and how it got there."""

    states: list[RecoveryState] = field(default_factory=lambda: [RecoveryState.IDLE])
    result: ResolutionResult | None = None
    error: AppLinksError | None = None
    visit_id: str | None = None

    @property
    def state(self) -> RecoveryState:
        return self.states[-1]

    @property
    def succeeded(self) -> bool:
        return self.state is RecoveryState.RESOLVED

    def advance(self, state: RecoveryState) -> None:
        log.debug("Deferred recovery: %s -> %s", self.state, state)
        self.states.append(state)

    def fail(self, state: RecoveryState, error: AppLinksError) -> RecoveryOutcome:
        self.advance(state)
        self.error = error
        return self


def parse_referrer_parameters(referrer: str) -> dict[str, str]:
    """Split ``a=1&b=2`` into a dict, silently skipping malformed pairs."""

    params: dict[str, str] = {}
    for pair in referrer.split("&"):
        parts = pair.split("=", 1)
        if len(parts) != 2:
            continue
        params[parts[0]] = parts[1]
    return params


@contextmanager
def _referrer_connection(source: InstallReferrerSource) -> Iterator[InstallReferrerSource]:
    try:
        source.connect()
        yield source
    finally:
        source.disconnect()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DeferredResolutionRecoverer:
    """Single-shot first-launch recovery feeding the shared pipeline and registry."""

    def __init__(
        self,
        *,
        state: AppStateStore,
        processed_ids: ProcessedIdentifierStore,
        client: ResolutionServiceClient,
        pipeline: ResolutionPipeline,
        listeners: ListenerRegistry,
        referrer_source: InstallReferrerSource | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._state = state
        self._processed_ids = processed_ids
        self._client = client
        self._pipeline = pipeline
        self._listeners = listeners
        self._referrer_source = referrer_source
        self._clock = clock
        self._lock = threading.Lock()
        self._attempted = False

    async def run(self) -> RecoveryOutcome:
        with self._lock:
            already_attempted = self._attempted
            self._attempted = True
        if already_attempted or self._state.is_first_launch_completed():
            log.debug("Skipping deferred deep link check - not first launch")
            outcome = RecoveryOutcome()
            outcome.advance(RecoveryState.SKIPPED)
            return outcome

        log.debug("First launch detected - checking for deferred deep link")
        outcome = RecoveryOutcome()
        try:
            await self._recover(outcome)
        except Exception as exc:
            log.exception("Deferred deep link recovery failed unexpectedly")
            outcome.fail(
                RecoveryState.FAILED,
                ResolutionError(f"Deferred deep link recovery failed: {exc}"),
            )
        finally:
            self._mark_first_launch_completed()

        self._report(outcome)
        return outcome

    async def _recover(self, outcome: RecoveryOutcome) -> RecoveryOutcome:
        outcome.advance(RecoveryState.CONNECTING)
        try:
            details = await asyncio.to_thread(self._read_referrer)
        except UnsupportedPlatformError as exc:
            state = (
                RecoveryState.UNSUPPORTED
                if exc.reason == "unsupported"
                else RecoveryState.SERVICE_ERROR
            )
            return outcome.fail(state, exc)
        outcome.advance(RecoveryState.REFERRER_AVAILABLE)

        outcome.advance(RecoveryState.PARSING_PAYLOAD)
        visit_id = parse_referrer_parameters(details.referrer).get(REFERRER_PARAM_VISIT_ID)
        if not visit_id:
            log.debug("No AppLinks visit id found in referrer")
            outcome.advance(RecoveryState.NO_PAYLOAD)
            return outcome
        outcome.advance(RecoveryState.PAYLOAD_FOUND)
        outcome.visit_id = visit_id

        outcome.advance(RecoveryState.DEDUPE_CHECK)
        if self._processed_ids.contains(visit_id):
            log.debug("Visit id %s already processed, skipping", visit_id)
            outcome.advance(RecoveryState.ALREADY_PROCESSED)
            return outcome
        outcome.advance(RecoveryState.NEW_VISIT)

        outcome.advance(RecoveryState.REMOTE_VISIT_LOOKUP)
        try:
            visit = await self._client.fetch_visit_details(visit_id)
        except ServiceError as exc:
            log.error("Failed to fetch visit details: %s", exc)
            outcome.fail(RecoveryState.VISIT_LOOKUP_FAILED, exc)
            outcome.advance(RecoveryState.FAILED)
            return outcome
        link = visit.link
        if link is None:
            outcome.fail(
                RecoveryState.VISIT_LOOKUP_FAILED,
                NotFoundError("No link data found in visit"),
            )
            outcome.advance(RecoveryState.FAILED)
            return outcome
        outcome.advance(RecoveryState.VISIT_RESOLVED)

        if link.is_expired(now=self._clock()):
            return outcome.fail(RecoveryState.FAILED, ExpiredLinkError("Link has expired"))

        try:
            identifier = Identifier.parse(link.payload_identifier)
        except ValidationError as exc:
            return outcome.fail(RecoveryState.FAILED, exc)
        result = await self._pipeline.resolve(identifier, self._initial_context(details, visit))
        outcome.result = result
        if not result.handled:
            error: AppLinksError
            if not self._pipeline.can_resolve(identifier):
                error = NoHandlerError(result.error or f"No stage claims {identifier}")
            else:
                error = ResolutionError(result.error or "Resolution failed", result=result)
            return outcome.fail(RecoveryState.FAILED, error)

        if not self._processed_ids.record(visit.id):
            # a live resolution of the same visit won the race and delivered it
            log.debug("Visit id %s processed while recovering, skipping", visit.id)
            outcome.advance(RecoveryState.ALREADY_PROCESSED)
            return outcome
        outcome.advance(RecoveryState.RESOLVED)
        return outcome

    def _mark_first_launch_completed(self) -> None:
        try:
            self._state.mark_first_launch_completed()
        except Exception:
            log.exception("Failed to mark first launch as completed")

    def _read_referrer(self) -> ReferrerDetails:
        source = self._referrer_source
        if source is None:
            raise UnsupportedPlatformError(
                "Install referrer not available", reason="unsupported"
            )
        try:
            with _referrer_connection(source) as connection:
                log.debug("Install referrer connection established")
                details = connection.get_referrer()
        except UnsupportedPlatformError:
            raise
        except Exception as exc:
            raise UnsupportedPlatformError(
                f"Error retrieving install referrer: {exc}", reason="unknown"
            ) from exc
        log.debug("Install referrer: %s", details.referrer)
        return details

    def _initial_context(self, details: ReferrerDetails, visit: VisitDetails) -> ResolutionContext:
        context = ResolutionContext(is_first_launch=True, launch_timestamp=self._clock())
        context.metadata.update(
            {
                "source": "install_referrer",
                "referrer_click_time": details.click_timestamp_seconds,
                "install_begin_time": details.install_begin_timestamp_seconds,
                "visit_id": visit.id,
            }
        )
        if visit.link is not None:
            context.metadata["link_title"] = visit.link.title
        return context

    def _report(self, outcome: RecoveryOutcome) -> None:
        if outcome.succeeded and outcome.result is not None:
            self._listeners.deliver(outcome.result)
            return
        if outcome.error is not None:
            log.info("Deferred deep link recovery failed: %s", outcome.error)
            self._listeners.deliver_error(outcome.error)
            return
        if outcome.state in QUIET_STATES:
            log.debug("Deferred deep link recovery finished: %s", outcome.state)
