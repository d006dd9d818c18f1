"""Flow state machine: step navigation, answers and submission hand-off."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any
from uuid import uuid4

from formflow.definitions import FieldSource
from formflow.errors import (
    AlreadySubmittedError,
    ConfigurationError,
    FieldNotApplicableError,
    FlowDismissedError,
    NavigationError,
)
from formflow.schemas.answer_models import (
    ANSWER_TYPES,
    AnswerValue,
    coerce_answer,
    parse_answer,
)
from formflow.schemas.enums import FlowEventType, SubmissionStatus
from formflow.schemas.field_models import FieldDescriptor
from formflow.schemas.flow_models import (
    AdvanceResult,
    FlowEvent,
    FlowState,
    SubmissionState,
    ValidationIssue,
)
from formflow.steps import FlowDefinition, StepDefinition
from formflow.submission import SubmissionCoordinator

LOGGER = logging.getLogger(__name__)

FlowListener = Callable[[FlowEvent], None]


class FormFlow:
    """Single owner of one flow instance's state.

    Callers serialize ``set_answer``/``advance``/``retreat``; the machine
    takes no locks. ``step_index`` always points at an applicable step.
    """

    def __init__(
        self,
        definition: FlowDefinition,
        coordinator: SubmissionCoordinator,
        *,
        flow_id: str | None = None,
    ) -> None:
        self.definition = definition
        self.coordinator = coordinator
        self.flow_id = flow_id or str(uuid4())
        self._answers: dict[str, AnswerValue] = {}
        self._visited: set[int] = set()
        self._dirty = False
        self._generation = 0
        self._active = True
        self._submission = coordinator.state
        self._listeners: list[FlowListener] = []
        first = self._next_applicable(-1)
        if first is None:
            raise ConfigurationError(f"Flow '{definition.key}' has no applicable steps")
        self._step_index = first

    # -- read side ---------------------------------------------------------

    @property
    def step_index(self) -> int:
        return self._step_index

    @property
    def current_step(self) -> StepDefinition:
        return self.definition.steps[self._step_index]

    @property
    def answers(self) -> Mapping[str, AnswerValue]:
        return MappingProxyType(self._answers)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active(self) -> bool:
        return self._active

    @property
    def submission(self) -> SubmissionState:
        return self._submission.model_copy(deep=True)

    @property
    def applicable_steps(self) -> tuple[StepDefinition, ...]:
        return self.definition.applicable_steps(self._answers)

    @property
    def total_applicable_steps(self) -> int:
        return len(self.applicable_steps)

    @property
    def position(self) -> int:
        """1-based position of the current step among applicable steps."""
        indexes = [step.index for step in self.applicable_steps]
        return indexes.index(self._step_index) + 1

    @property
    def can_retreat(self) -> bool:
        return self._previous_applicable(self._step_index) is not None

    @property
    def is_last_step(self) -> bool:
        return self._next_applicable(self._step_index) is None

    @property
    def dirty(self) -> bool:
        """Whether answers changed since the last successful advance."""
        return self._dirty

    def current_issues(self) -> list[ValidationIssue]:
        """Validate the current step without navigating."""
        step = self.current_step
        return self.definition.schema_for(step, self._answers).validate(self._answers)

    @property
    def is_current_step_valid(self) -> bool:
        return not self.current_issues()

    @property
    def retained_answer_ids(self) -> frozenset[str]:
        """Answers kept but excluded from submission because hidden."""
        applicable = {field.id for field in self.definition.applicable_fields(self._answers)}
        return frozenset(field_id for field_id in self._answers if field_id not in applicable)

    @property
    def state(self) -> FlowState:
        return FlowState(
            flow_id=self.flow_id,
            flow_key=self.definition.key,
            generation=self._generation,
            active=self._active,
            step_index=self._step_index,
            answers={
                field_id: answer.model_copy(deep=True)
                for field_id, answer in self._answers.items()
            },
            visited_steps=set(self._visited),
            dirty=self._dirty,
            submission=self._submission.model_copy(deep=True),
        )

    def subscribe(self, listener: FlowListener) -> Callable[[], None]:
        """Register a state-change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- mutations ---------------------------------------------------------

    def set_answer(self, field_id: str, value: Any) -> AnswerValue:
        """Record an answer for a currently applicable field."""
        self._ensure_mutable()
        descriptor = self.definition.field(field_id)
        if not self.definition.is_field_applicable(field_id, self._answers):
            raise FieldNotApplicableError(field_id)
        answer = _to_answer(descriptor, value)
        self._answers[field_id] = answer
        self._dirty = True
        LOGGER.debug("Flow %s answer set for %s", self.flow_id, field_id)
        self._emit(FlowEventType.ANSWER_SET, field_id=field_id)
        self._reanchor()
        return answer

    def clear_answer(self, field_id: str) -> bool:
        """Remove an answer; returns whether one was present."""
        self._ensure_mutable()
        self.definition.field(field_id)
        if self._answers.pop(field_id, None) is None:
            return False
        self._dirty = True
        self._emit(FlowEventType.ANSWER_CLEARED, field_id=field_id)
        self._reanchor()
        return True

    async def advance(self) -> AdvanceResult:
        """Validate the current step, then move forward or submit."""
        self._ensure_mutable()
        step = self.current_step
        issues = self.current_issues()
        if issues:
            LOGGER.debug(
                "Flow %s step %s rejected %d issue(s)", self.flow_id, step.key, len(issues)
            )
            return AdvanceResult(
                moved=False,
                step_index=self._step_index,
                issues=issues,
                submission=self.submission,
            )

        self._visited.add(step.index)
        self._dirty = False
        next_index = self._next_applicable(self._step_index)
        if next_index is not None:
            self._move_to(next_index)
            return AdvanceResult(
                moved=True, step_index=self._step_index, submission=self.submission
            )
        return await self._submit()

    def retreat(self) -> int:
        """Move to the previous applicable step without re-validating."""
        self._ensure_mutable()
        previous = self._previous_applicable(self._step_index)
        if previous is None:
            raise NavigationError("Already at the first applicable step")
        self._move_to(previous)
        return self._step_index

    def reload(self, fields: Sequence[FieldDescriptor]) -> None:
        """Recompose steps from a fresh field list, keeping answers."""
        self._ensure_active()
        current_key = self.current_step.key
        self.definition = self.definition.rebuild(fields)
        if not self.definition.steps:
            raise ConfigurationError(f"Flow '{self.definition.key}' has no steps")
        self._visited = {index for index in self._visited if index < len(self.definition.steps)}
        matching = [step.index for step in self.definition.steps if step.key == current_key]
        self._step_index = matching[0] if matching else min(
            self._step_index, len(self.definition.steps) - 1
        )
        self._emit(FlowEventType.RELOADED)
        self._reanchor()

    def bind(self, source: FieldSource) -> Callable[[], None]:
        """Reload whenever ``source`` reports a new field list."""
        return source.subscribe(self.reload)

    def dismiss(self) -> None:
        """Deactivate the flow; late submission outcomes are ignored."""
        if not self._active:
            return
        self._active = False
        self._generation += 1
        LOGGER.debug("Flow %s dismissed at generation %d", self.flow_id, self._generation)
        self._emit(FlowEventType.DISMISSED)

    # -- internals ---------------------------------------------------------

    async def _submit(self) -> AdvanceResult:
        fields = self.definition.applicable_fields(self._answers)
        token = self._generation
        outcome = await self.coordinator.submit(
            self._answers,
            fields,
            flow_key=self.definition.key,
            flow_id=self.flow_id,
            generation=token,
            on_change=self._submission_listener(token),
        )
        if token != self._generation:
            LOGGER.warning(
                "Flow %s dismissed during submission; ignoring %s outcome",
                self.flow_id,
                outcome.status.value,
            )
        return AdvanceResult(
            moved=False,
            step_index=self._step_index,
            issues=outcome.issues,
            submitted=outcome.ok and token == self._generation,
            submission=self.submission,
        )

    def _submission_listener(self, token: int) -> Callable[[SubmissionState], None]:
        def apply(state: SubmissionState) -> None:
            if token != self._generation or not self._active:
                LOGGER.warning(
                    "Ignoring submission update %s for stale flow %s",
                    state.status.value,
                    self.flow_id,
                )
                return
            self._submission = state
            self._emit(FlowEventType.SUBMISSION_CHANGED)

        return apply

    def _move_to(self, index: int) -> None:
        previous = self._step_index
        if index == previous:
            return
        self._step_index = index
        LOGGER.debug("Flow %s step %d -> %d", self.flow_id, previous, index)
        self._emit(FlowEventType.STEP_CHANGED, previous_step_index=previous)

    def _reanchor(self) -> None:
        if self.definition.is_step_applicable(self.current_step, self._answers):
            return
        target = self._next_applicable(self._step_index)
        if target is None:
            target = self._previous_applicable(self._step_index)
        if target is None:
            raise NavigationError("No applicable steps remain for the current answers")
        self._move_to(target)

    def _next_applicable(self, after: int) -> int | None:
        indexes = [step.index for step in self.applicable_steps if step.index > after]
        return indexes[0] if indexes else None

    def _previous_applicable(self, before: int) -> int | None:
        indexes = [step.index for step in self.applicable_steps if step.index < before]
        return indexes[-1] if indexes else None

    def _ensure_active(self) -> None:
        if not self._active:
            raise FlowDismissedError(f"Flow {self.flow_id} has been dismissed")

    def _ensure_mutable(self) -> None:
        self._ensure_active()
        if self._submission.status == SubmissionStatus.SUCCEEDED:
            raise AlreadySubmittedError(f"Flow {self.flow_id} has already been submitted")

    def _emit(self, event_type: FlowEventType, **details: Any) -> None:
        if not self._listeners:
            return
        event = FlowEvent(
            type=event_type,
            flow_id=self.flow_id,
            generation=self._generation,
            state=self.state,
            **details,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Flow listener failed for %s event", event_type.value)


def _to_answer(descriptor: FieldDescriptor, value: Any) -> AnswerValue:
    if isinstance(value, ANSWER_TYPES):
        return value.model_copy(deep=True)
    if isinstance(value, dict) and "kind" in value:
        return parse_answer(value)
    return coerce_answer(descriptor.kind, value)
