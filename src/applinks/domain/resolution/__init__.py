"""Link resolution core.

Identifiers flow through an ordered ``ResolutionPipeline`` of stages that share a
mutable ``ResolutionContext``; the final context becomes an immutable
``ResolutionResult`` that the ``ListenerRegistry`` delivers or buffers. The
``DeferredResolutionRecoverer`` feeds first-launch install referrals into the same
path.
"""

from __future__ import annotations

from .context import ResolutionContext, ResolutionResult
from .deferred import (
    REFERRER_PARAM_VISIT_ID,
    DeferredResolutionRecoverer,
    RecoveryOutcome,
    RecoveryState,
    parse_referrer_parameters,
)
from .listeners import ListenerRegistry, ResolutionListener
from .pipeline import Continuation, ResolutionPipeline, Stage, TransformStage
from .stages import InstrumentationStage, RemoteDomainStage, SchemeStage

__all__ = [
    "REFERRER_PARAM_VISIT_ID",
    "Continuation",
    "DeferredResolutionRecoverer",
    "InstrumentationStage",
    "ListenerRegistry",
    "RecoveryOutcome",
    "RecoveryState",
    "RemoteDomainStage",
    "ResolutionContext",
    "ResolutionListener",
    "ResolutionPipeline",
    "ResolutionResult",
    "SchemeStage",
    "Stage",
    "TransformStage",
    "parse_referrer_parameters",
]
