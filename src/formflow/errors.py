"""Error taxonomy for the form flow engine."""

from __future__ import annotations

from collections.abc import Iterable


class FormFlowError(Exception):
    """Base class for all engine errors."""

class ConfigurationError(FormFlowError):
    """Raised for caller bugs in flow or registry setup. Never recoverable."""

class UnknownFieldKindError(ConfigurationError):
    """Raised when no rule generator exists for a field kind."""

    def __init__(self, field_id: str, kind: str) -> None:
        super().__init__(f"No rule generator registered for kind '{kind}' (field '{field_id}')")
        self.field_id = field_id
        self.kind = kind

class UnregisteredTransformerError(ConfigurationError):
    """Raised when applicable answers use kinds without a transformer."""

    def __init__(self, kinds: Iterable[str]) -> None:
        self.kinds = tuple(sorted(set(kinds)))
        super().__init__(f"No transformer registered for kind(s): {', '.join(self.kinds)}")

class DuplicateFieldError(ConfigurationError):
    """Raised when a field id appears more than once in a flow."""

    def __init__(self, field_id: str) -> None:
        super().__init__(f"Duplicate field id in flow: {field_id}")
        self.field_id = field_id

class UnknownFieldError(FormFlowError, KeyError):
    """Raised when an answer targets a field id the flow does not define."""

    def __init__(self, field_id: str) -> None:
        super().__init__(f"Unknown field id: {field_id}")
        self.field_id = field_id

    def __str__(self) -> str:
        return str(self.args[0])

class FieldNotApplicableError(FormFlowError):
    """Raised when an answer targets a field hidden by its visibility rule."""

    def __init__(self, field_id: str) -> None:
        super().__init__(f"Field is not applicable for the current answers: {field_id}")
        self.field_id = field_id

class NavigationError(FormFlowError):
    """Raised for navigation requests that cannot be honoured."""

class InvalidTransitionError(FormFlowError):
    """Raised when the submission status would move backwards."""

class AlreadySubmittedError(FormFlowError):
    """Raised when a succeeded submission is submitted again."""

class FlowDismissedError(FormFlowError):
    """Raised when a dismissed flow receives a mutation."""

class TransformError(FormFlowError):
    """Raised when a single answer cannot be transformed for submission."""

    def __init__(self, field_id: str, message: str) -> None:
        super().__init__(f"Transform failed for field '{field_id}': {message}")
        self.field_id = field_id
