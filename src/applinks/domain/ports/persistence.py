"""Port for the small amount of state AppLinks persists between launches."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence


@runtime_checkable
class AppStateStore(Protocol):
    """Persistence contract for the first-launch flag and processed visit ids."""

    def is_first_launch_completed(self) -> bool: ...

    def mark_first_launch_completed(self) -> None: ...

    def load_processed_ids(self) -> list[str]:
        """Return processed visit ids, oldest first."""
        ...

    def save_processed_ids(self, ids: Sequence[str]) -> None:
        """Replace the persisted processed visit ids, oldest first."""
        ...


__all__ = ["AppStateStore"]
