"""Observability exports."""

from formflow.observability.tracing import (
    LangfuseTracer,
    NoOpTracer,
    TracerProtocol,
    create_tracer,
)
from formflow.observability.transition_store import (
    TransitionRecord,
    TransitionRecorder,
    TransitionStore,
)

__all__ = [
    "LangfuseTracer",
    "NoOpTracer",
    "TracerProtocol",
    "TransitionRecord",
    "TransitionRecorder",
    "TransitionStore",
    "create_tracer",
]
