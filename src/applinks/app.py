"""Application orchestration: the ``AppLinks`` handle and its default wiring."""

from __future__ import annotations

import asyncio
import threading
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from applinks.adapters.applinks_api import AppLinksApiClient
from applinks.adapters.sqlalchemy import SqlAlchemyAppStateStore, configured_engine, startup
from applinks.config import get_applinks_config
from applinks.domain.creation import LinkCreator
from applinks.domain.errors import NoHandlerError, ResolutionError, ValidationError
from applinks.domain.identifiers import Identifier, as_identifier
from applinks.domain.processed_ids import ProcessedIdentifierStore
from applinks.domain.resolution import (
    DeferredResolutionRecoverer,
    InstrumentationStage,
    ListenerRegistry,
    RemoteDomainStage,
    ResolutionContext,
    ResolutionPipeline,
    ResolutionResult,
    SchemeStage,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from applinks.config import AppLinksConfig
    from applinks.domain.creation import CreationRequest, CreationResult
    from applinks.domain.ports import (
        AppStateStore,
        InstallReferrerSource,
        ResolutionServiceClient,
    )
    from applinks.domain.resolution import (
        RecoveryOutcome,
        ResolutionListener,
        Stage,
    )

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AppLinks:
    """Application-owned handle around one pipeline, one registry and one dedupe store.

    Construct once, call ``start()`` once, then resolve as many identifiers as
    needed. ``resolve`` returns the result and also hands it to the listener
    registry, which buffers it until the first listener registers.
    """

    def __init__(
        self,
        *,
        config: AppLinksConfig,
        client: ResolutionServiceClient,
        state: AppStateStore,
        referrer_source: InstallReferrerSource | None = None,
        listeners: ListenerRegistry | None = None,
        stages: Iterable[Stage] = (),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self._client = client
        self._state = state
        self._clock = clock
        self._custom_stages = list(stages)
        self._lock = threading.Lock()
        self._started = False
        self._first_launch: bool | None = None

        self.pipeline = ResolutionPipeline()
        self.listeners = listeners or ListenerRegistry()
        self.processed_ids = ProcessedIdentifierStore(
            state, capacity=config.processed_ids_capacity
        )
        self._creator = LinkCreator(client)
        self._recoverer = DeferredResolutionRecoverer(
            state=state,
            processed_ids=self.processed_ids,
            client=client,
            pipeline=self.pipeline,
            listeners=self.listeners,
            referrer_source=referrer_source,
            clock=clock,
        )

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> asyncio.Task[RecoveryOutcome] | None:
        """Register the default stages and schedule deferred recovery if due.

        Must be called from a running event loop when deferred recovery is
        enabled on a first launch; the returned task completes with the
        recovery outcome. Repeated calls log a warning and do nothing.
        """

        with self._lock:
            if self._started:
                log.warning("AppLinks already started; ignoring repeated start()")
                return None
            self._started = True

        self.pipeline.add_stage(InstrumentationStage())
        if self.config.supported_domains:
            self.pipeline.add_stage(
                RemoteDomainStage(
                    supported_domains=self.config.supported_domains,
                    client=self._client,
                    native_schemes=self.config.supported_schemes,
                )
            )
        if self.config.supported_schemes:
            self.pipeline.add_stage(SchemeStage(self.config.supported_schemes))
        for stage in self._custom_stages:
            self.pipeline.add_stage(stage)

        log.info(
            "AppLinks started: domains=%s, schemes=%s, deferred=%s",
            ", ".join(self.config.supported_domains) or "-",
            ", ".join(self.config.supported_schemes) or "-",
            self.config.deferred_deep_linking_enabled,
        )

        first_launch = self._is_first_launch()
        if not self.config.deferred_deep_linking_enabled:
            return None
        if not first_launch:
            log.debug("Skipping deferred deep link check - not first launch")
            return None
        return asyncio.get_running_loop().create_task(self.recover_deferred())

    def add_stage(self, stage: Stage) -> None:
        self.pipeline.add_stage(stage)

    def can_resolve(self, identifier: Identifier | str) -> bool:
        try:
            target = as_identifier(identifier)
        except ValidationError:
            return False
        return self.pipeline.can_resolve(target)

    async def resolve(self, identifier: Identifier | str) -> ResolutionResult:
        """Resolve ``identifier`` and hand the outcome to the listeners.

        Never raises for a bad identifier or a failing stage; those come back as
        a non-handled result and are delivered as errors. A result carrying a
        visit id that was already delivered, by recovery or an earlier call, is
        returned but not delivered again.
        """

        try:
            target = as_identifier(identifier)
        except ValidationError as exc:
            log.info("%s", exc)
            result = ResolutionResult.failure(
                Identifier.unparsed(str(identifier)), f"{type(exc).__name__}: {exc}"
            )
            self.listeners.deliver_error(exc)
            return result
        context = ResolutionContext(
            is_first_launch=self._is_first_launch(),
            launch_timestamp=self._clock(),
        )
        result = await self.pipeline.resolve(target, context)

        if not result.handled:
            error: NoHandlerError | ResolutionError
            if not self.pipeline.can_resolve(target):
                error = NoHandlerError(f"No resolution stage claims identifier: {target}")
            else:
                error = ResolutionError(result.error or "Resolution failed", result=result)
            self.listeners.deliver_error(error)
            return result

        visit_id = result.metadata.get("visit_id")
        if isinstance(visit_id, str) and visit_id and not self.processed_ids.record(visit_id):
            log.debug("Visit id %s was already delivered, not delivering again", visit_id)
            return result
        self.listeners.deliver(result)
        return result

    def resolve_sync(self, identifier: Identifier | str) -> ResolutionResult:
        return asyncio.run(self.resolve(identifier))

    def register_listener(self, listener: ResolutionListener) -> None:
        self.listeners.register(listener)

    def unregister_listener(self, listener: ResolutionListener) -> None:
        self.listeners.unregister(listener)

    async def create_short_link(self, request: CreationRequest) -> CreationResult:
        return await self._creator.create(request)

    async def recover_deferred(self) -> RecoveryOutcome:
        outcome = await self._recoverer.run()
        log.info("Deferred deep link recovery finished: %s", outcome.state)
        return outcome

    def close(self, *, wait: bool = True) -> None:
        self.listeners.close(wait=wait)

    def _is_first_launch(self) -> bool:
        # read once per process; recovery marks the flag but this launch stays the first
        if self._first_launch is None:
            self._first_launch = not self._state.is_first_launch_completed()
        return self._first_launch


def open_state_store() -> SqlAlchemyAppStateStore:
    """Return the SQLAlchemy state store, initialising the engine on first use."""

    if configured_engine() is None:
        startup()
    return SqlAlchemyAppStateStore()


def build_app_links(
    *,
    config: AppLinksConfig | None = None,
    client: ResolutionServiceClient | None = None,
    state: AppStateStore | None = None,
    referrer_source: InstallReferrerSource | None = None,
    listeners: ListenerRegistry | None = None,
    stages: Iterable[Stage] = (),
) -> AppLinks:
    """Wire ``AppLinks`` with the HTTP client and SQLAlchemy state by default."""

    effective_config = config or get_applinks_config()
    return AppLinks(
        config=effective_config,
        client=client or AppLinksApiClient(config=effective_config),
        state=state or open_state_store(),
        referrer_source=referrer_source,
        listeners=listeners,
        stages=stages,
    )
