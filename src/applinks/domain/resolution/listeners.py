"""Listener registry with replay of results delivered before anyone listened."""

from __future__ import annotations

import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from applinks.domain.errors import AppLinksError
    from applinks.domain.resolution.context import ResolutionResult

log = getLogger(__name__)

type Dispatcher = Callable[[Callable[[], None]], object]


@runtime_checkable
class ResolutionListener(Protocol):
    """Observer of resolution outcomes."""

    def on_result(self, result: ResolutionResult) -> None: ...

    def on_error(self, error: AppLinksError) -> None: ...


@dataclass(frozen=True, slots=True)
class _Delivery:
    kind: Literal["result", "error"]
    payload: ResolutionResult | AppLinksError


class ListenerRegistry:
    """Fan results out to listeners, buffering while none are registered.

    When the first listener registers, everything buffered so far is replayed to
    it in arrival order and the buffer is cleared; later listeners never see
    that replay. All callbacks go through one ``dispatcher`` whose tasks run one
    at a time in submission order (by default a single-thread executor), so
    listeners are never called concurrently. Decisions and submissions happen
    under one lock, which keeps replay ahead of anything delivered afterwards.

    ``max_pending`` caps the buffer by dropping the oldest entries; ``None``
    keeps it unbounded. After ``close()`` deliveries are logged and dropped.
    """

    def __init__(
        self,
        *,
        dispatcher: Dispatcher | None = None,
        max_pending: int | None = None,
    ) -> None:
        self._executor: ThreadPoolExecutor | None = None
        if dispatcher is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="applinks-delivery"
            )
            dispatcher = self._executor.submit
        self._dispatch = dispatcher
        self._max_pending = max_pending
        self._listeners: list[ResolutionListener] = []
        self._pending: deque[_Delivery] = deque()
        self._lock = threading.RLock()
        self._closed = False

    @property
    def listeners(self) -> tuple[ResolutionListener, ...]:
        with self._lock:
            return tuple(self._listeners)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def register(self, listener: ResolutionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                return
            first = not self._listeners
            self._listeners.append(listener)
            if not first or not self._pending or self._closed:
                return
            replay = tuple(self._pending)
            self._pending.clear()
            log.debug("Replaying %s buffered delivery(ies) to first listener", len(replay))
            self._dispatch(lambda: self._fan_out(replay, (listener,)))

    def unregister(self, listener: ResolutionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def deliver(self, result: ResolutionResult) -> None:
        self._submit(_Delivery("result", result))

    def deliver_error(self, error: AppLinksError) -> None:
        self._submit(_Delivery("error", error))

    def close(self, *, wait: bool = True) -> None:
        """Stop the default delivery executor after running queued callbacks."""

        with self._lock:
            self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _submit(self, delivery: _Delivery) -> None:
        with self._lock:
            if self._closed:
                log.warning("Dropping %s delivered after the registry was closed", delivery.kind)
                return
            if not self._listeners:
                self._buffer(delivery)
                return
            targets = tuple(self._listeners)
            self._dispatch(lambda: self._fan_out((delivery,), targets))

    def _buffer(self, delivery: _Delivery) -> None:
        self._pending.append(delivery)
        if self._max_pending is None:
            return
        while len(self._pending) > self._max_pending:
            dropped = self._pending.popleft()
            log.warning("Dropping oldest buffered %s: no listener registered", dropped.kind)

    @staticmethod
    def _fan_out(
        deliveries: Sequence[_Delivery],
        listeners: Sequence[ResolutionListener],
    ) -> None:
        for delivery in deliveries:
            for listener in listeners:
                try:
                    if delivery.kind == "result":
                        listener.on_result(delivery.payload)  # type: ignore[arg-type]
                    else:
                        listener.on_error(delivery.payload)  # type: ignore[arg-type]
                except Exception:
                    log.exception(
                        "Listener %s failed while handling a %s",
                        type(listener).__name__,
                        delivery.kind,
                    )
