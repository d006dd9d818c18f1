"""Flow state machine exports."""

from formflow.flow.machine import FlowListener, FormFlow

__all__ = ["FlowListener", "FormFlow"]
