"""In-process adapters for embedding AppLinks without a database or platform service."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from applinks.domain.ports.install_referrer import InstallReferrerSource, ReferrerDetails
from applinks.domain.ports.persistence import AppStateStore

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from applinks.domain.errors import UnsupportedPlatformError


class InMemoryAppStateStore:
    """Keep the first-launch flag and processed visit ids in memory."""

    def __init__(
        self,
        *,
        first_launch_completed: bool = False,
        processed_ids: Iterable[str] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._first_launch_completed = first_launch_completed
        self._processed_ids = list(processed_ids)
        self.saves = 0

    def is_first_launch_completed(self) -> bool:
        with self._lock:
            return self._first_launch_completed

    def mark_first_launch_completed(self) -> None:
        with self._lock:
            self._first_launch_completed = True

    def load_processed_ids(self) -> list[str]:
        with self._lock:
            return list(self._processed_ids)

    def save_processed_ids(self, ids: Sequence[str]) -> None:
        with self._lock:
            self._processed_ids = list(ids)
            self.saves += 1


class StaticInstallReferrer:
    """Serve a fixed referrer string, or fail the way a real platform would.

    Passing ``error`` makes ``connect`` raise it. Connection bookkeeping is kept
    so callers can verify that every connection was released.
    """

    def __init__(
        self,
        referrer: str | None = None,
        *,
        click_timestamp_seconds: int = 0,
        install_begin_timestamp_seconds: int = 0,
        error: UnsupportedPlatformError | None = None,
    ) -> None:
        self._details = ReferrerDetails(
            referrer=referrer or "",
            click_timestamp_seconds=click_timestamp_seconds,
            install_begin_timestamp_seconds=install_begin_timestamp_seconds,
        )
        self._error = error
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0

    def connect(self) -> None:
        self.connect_calls += 1
        if self._error is not None:
            raise self._error
        self.connected = True

    def get_referrer(self) -> ReferrerDetails:
        if not self.connected:
            raise RuntimeError("Install referrer is not connected")
        return self._details

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False


if TYPE_CHECKING:

    def _state_check(store: InMemoryAppStateStore) -> AppStateStore:
        return store

    def _referrer_check(source: StaticInstallReferrer) -> InstallReferrerSource:
        return source
