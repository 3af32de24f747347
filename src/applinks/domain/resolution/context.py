"""Data carried through and out of the resolution pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from applinks.domain.identifiers import Identifier


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class ResolutionContext:
    """Mutable accumulator threaded through the stages of one resolution.

    A context is created per resolution call and handed from stage to stage; a
    stage receives it, mutates it and returns it, so no two stages hold it at the
    same time. ``resolved_params`` keeps insertion order and the last writer of a
    key wins.
    """

    is_first_launch: bool = False
    launch_timestamp: datetime = field(default_factory=_utcnow)
    resolved_path: str | None = None
    resolved_params: dict[str, str] = field(default_factory=dict[str, str])
    metadata: dict[str, Any] = field(default_factory=dict[str, Any])
    rewritten_identifier: Identifier | None = None


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    """Immutable outcome of one resolution.

    ``error`` is set exactly when ``handled`` is false.
    """

    handled: bool
    original_identifier: Identifier
    path: str = ""
    params: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    rewritten_identifier: Identifier | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.handled and self.error is not None:
            raise ValueError("A handled result cannot carry an error")
        if not self.handled and self.error is None:
            raise ValueError("A result that was not handled must carry an error")

    @classmethod
    def from_context(cls, identifier: Identifier, context: ResolutionContext) -> ResolutionResult:
        return cls(
            handled=True,
            original_identifier=identifier,
            rewritten_identifier=context.rewritten_identifier or identifier,
            path=context.resolved_path or "",
            params=MappingProxyType(dict(context.resolved_params)),
            metadata=MappingProxyType(dict(context.metadata)),
        )

    @classmethod
    def failure(cls, identifier: Identifier, error: str) -> ResolutionResult:
        return cls(handled=False, original_identifier=identifier, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "handled": self.handled,
            "original_identifier": str(self.original_identifier),
            "rewritten_identifier": (
                str(self.rewritten_identifier) if self.rewritten_identifier else None
            ),
            "path": self.path,
            "params": dict(self.params),
            "metadata": dict(self.metadata),
            "error": self.error,
        }
