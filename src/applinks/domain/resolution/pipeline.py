"""Ordered, continuation-driven resolution pipeline."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from logging import getLogger
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from applinks.domain.errors import NoHandlerError, PipelineBusyError
from applinks.domain.resolution.context import ResolutionContext, ResolutionResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from applinks.domain.identifiers import Identifier

log = getLogger(__name__)

type Continuation = Callable[[ResolutionContext], Awaitable[ResolutionContext]]


@runtime_checkable
class Stage(Protocol):
    """Contract implemented by each resolution stage.

    ``process`` receives the context, the identifier and a continuation that runs
    the rest of the pipeline. A stage that does not apply must hand the context
    to the continuation unchanged; a stage may also wrap the continuation to act
    on the context the downstream stages return.
    """

    def can_handle(self, identifier: Identifier) -> bool: ...

    async def process(
        self,
        context: ResolutionContext,
        identifier: Identifier,
        call_next: Continuation,
    ) -> ResolutionContext: ...


class TransformStage(ABC):
    """Stage whose logic is a plain ``(context, identifier) -> context`` transform.

    The continuation is invoked here, never by subclasses: inapplicable
    identifiers pass through untouched and applicable ones are transformed first.
    """

    @abstractmethod
    def can_handle(self, identifier: Identifier) -> bool: ...

    @abstractmethod
    async def apply(self, context: ResolutionContext, identifier: Identifier) -> ResolutionContext:
        """Return the transformed context for an identifier this stage handles."""

    async def process(
        self,
        context: ResolutionContext,
        identifier: Identifier,
        call_next: Continuation,
    ) -> ResolutionContext:
        if not self.can_handle(identifier):
            return await call_next(context)
        return await call_next(await self.apply(context, identifier))


class ResolutionPipeline:
    """Run registered stages strictly in registration order.

    Registration order is the only sequencing mechanism: instrumentation that
    should observe the whole run has to be added first. The stage list must not
    change while a resolution is in flight; doing so raises ``PipelineBusyError``.
    """

    def __init__(self, stages: Iterable[Stage] = ()) -> None:
        self._stages: list[Stage] = []
        self._lock = threading.Lock()
        self._in_flight = 0
        for stage in stages:
            self.add_stage(stage)

    @property
    def stages(self) -> tuple[Stage, ...]:
        return tuple(self._stages)

    def add_stage(self, stage: Stage) -> None:
        with self._lock:
            self._ensure_idle()
            self._stages.append(stage)
        log.debug("Added stage: %s", type(stage).__name__)

    def remove_stage(self, stage: Stage) -> None:
        with self._lock:
            self._ensure_idle()
            self._stages.remove(stage)

    def clear(self) -> None:
        with self._lock:
            self._ensure_idle()
            self._stages.clear()

    def can_resolve(self, identifier: Identifier) -> bool:
        return _any_claims(self.stages, identifier)

    async def resolve(
        self,
        identifier: Identifier,
        initial_context: ResolutionContext | None = None,
    ) -> ResolutionResult:
        """Drive ``identifier`` through every stage and convert the final context.

        Stage failures never escape: they produce a non-handled result without
        any of the partially accumulated context.
        """

        log.debug("Resolving identifier through pipeline: %s", identifier)
        with self._lock:
            stages = tuple(self._stages)
            self._in_flight += 1
        try:
            if not _any_claims(stages, identifier):
                error = NoHandlerError(f"No resolution stage claims identifier: {identifier}")
                log.info("%s", error)
                return ResolutionResult.failure(identifier, f"{type(error).__name__}: {error}")
            try:
                final_context = await self._dispatch(
                    stages, 0, initial_context or ResolutionContext(), identifier
                )
            except Exception as exc:
                message = f"Error processing link through resolution pipeline: {exc}"
                log.exception("%s", message)
                return ResolutionResult.failure(identifier, message)
            return ResolutionResult.from_context(identifier, final_context)
        finally:
            with self._lock:
                self._in_flight -= 1

    async def _dispatch(
        self,
        stages: Sequence[Stage],
        index: int,
        context: ResolutionContext,
        identifier: Identifier,
    ) -> ResolutionContext:
        if index >= len(stages):
            return context

        stage = stages[index]
        log.debug("Processing with stage: %s", type(stage).__name__)

        async def call_next(next_context: ResolutionContext) -> ResolutionContext:
            return await self._dispatch(stages, index + 1, next_context, identifier)

        return await stage.process(context, identifier, call_next)

    def _ensure_idle(self) -> None:
        if self._in_flight:
            raise PipelineBusyError(
                "Resolution stages cannot be reconfigured while a resolution is in flight"
            )


def _any_claims(stages: Sequence[Stage], identifier: Identifier) -> bool:
    """Return whether a stage claims ``identifier``; a raising predicate claims nothing."""

    for stage in stages:
        try:
            if stage.can_handle(identifier):
                return True
        except Exception:
            log.exception("Stage %s failed to check %s", type(stage).__name__, identifier)
    return False
