"""Step derivation from flat field lists."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from itertools import groupby

from formflow.composition import CompositeSchema, SchemaComposer
from formflow.errors import DuplicateFieldError, UnknownFieldError
from formflow.schemas.answer_models import AnswerValue
from formflow.schemas.field_models import FieldDescriptor, VisibilityRule


@dataclass(frozen=True)
class LeadStep:
    """Fixed step prepended ahead of the dynamic fields."""

    key: str
    fields: tuple[FieldDescriptor, ...]
    title: str | None = None
    precondition: VisibilityRule | None = None


@dataclass(frozen=True)
class StepDefinition:
    """One screen's worth of fields."""

    index: int
    key: str
    fields: tuple[FieldDescriptor, ...]
    schema: CompositeSchema
    title: str | None = None
    precondition: VisibilityRule | None = None
    lead: bool = False
    composer: SchemaComposer | None = field(default=None, compare=False, repr=False)

    @property
    def field_ids(self) -> tuple[str, ...]:
        return tuple(descriptor.id for descriptor in self.fields)

    def applicable_fields(
        self, answers: Mapping[str, AnswerValue]
    ) -> tuple[FieldDescriptor, ...]:
        if self.precondition is not None and not self.precondition.evaluate(answers):
            return ()
        return tuple(descriptor for descriptor in self.fields if descriptor.is_visible(answers))

    def is_applicable(self, answers: Mapping[str, AnswerValue]) -> bool:
        return bool(self.applicable_fields(answers))

    def schema_for(self, answers: Mapping[str, AnswerValue]) -> CompositeSchema:
        """Schema restricted to the fields applicable under ``answers``."""
        return self.restricted_schema(self.applicable_fields(answers))

    def restricted_schema(self, applicable: Sequence[FieldDescriptor]) -> CompositeSchema:
        if len(applicable) == len(self.fields):
            return self.schema
        composer = self.composer or SchemaComposer()
        return composer.compose(applicable)


def derive_steps(
    fields: Sequence[FieldDescriptor],
    *,
    composer: SchemaComposer,
    lead: LeadStep | None = None,
) -> tuple[StepDefinition, ...]:
    """Group consecutive fields sharing a ``step`` key into step definitions.

    Fields without a step key get a step of their own. Equal inputs yield
    structurally equal outputs.
    """
    _ensure_unique_ids([*(lead.fields if lead else ()), *fields])
    steps: list[StepDefinition] = []
    if lead is not None:
        steps.append(
            StepDefinition(
                index=0,
                key=lead.key,
                title=lead.title,
                fields=lead.fields,
                schema=composer.compose(lead.fields),
                precondition=lead.precondition,
                lead=True,
                composer=composer,
            )
        )
    for step_key, group in groupby(fields, key=lambda descriptor: descriptor.step):
        grouped = list(group)
        chunks = [grouped] if step_key is not None else [[item] for item in grouped]
        for chunk in chunks:
            steps.append(
                StepDefinition(
                    index=len(steps),
                    key=step_key or chunk[0].id,
                    title=chunk[0].label if step_key is None else step_key,
                    fields=tuple(chunk),
                    schema=composer.compose(chunk),
                    composer=composer,
                )
            )
    return tuple(steps)


def _ensure_unique_ids(fields: Sequence[FieldDescriptor]) -> None:
    seen: set[str] = set()
    for descriptor in fields:
        if descriptor.id in seen:
            raise DuplicateFieldError(descriptor.id)
        seen.add(descriptor.id)


@dataclass(frozen=True)
class Applicability:
    """Fields that apply per step index, and the answers that count."""

    fields_by_step: Mapping[int, tuple[FieldDescriptor, ...]]
    answers: dict[str, AnswerValue]


@dataclass(frozen=True)
class FlowDefinition:
    """A flow's field list together with its derived steps."""

    key: str
    fields: tuple[FieldDescriptor, ...]
    steps: tuple[StepDefinition, ...]
    lead: LeadStep | None = None
    title: str | None = None

    @classmethod
    def build(
        cls,
        key: str,
        fields: Sequence[FieldDescriptor],
        *,
        lead: LeadStep | None = None,
        title: str | None = None,
        composer: SchemaComposer | None = None,
    ) -> "FlowDefinition":
        active_composer = composer or SchemaComposer()
        steps = derive_steps(fields, composer=active_composer, lead=lead)
        return cls(key=key, fields=tuple(fields), steps=steps, lead=lead, title=title)

    def rebuild(self, fields: Sequence[FieldDescriptor]) -> "FlowDefinition":
        """Recompose the definition from a fresh source snapshot."""
        composer = self.steps[0].composer if self.steps else None
        return FlowDefinition.build(
            self.key, fields, lead=self.lead, title=self.title, composer=composer
        )

    @property
    def all_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(descriptor for step in self.steps for descriptor in step.fields)

    def field(self, field_id: str) -> FieldDescriptor:
        for descriptor in self.all_fields:
            if descriptor.id == field_id:
                return descriptor
        raise UnknownFieldError(field_id)

    def step_of(self, field_id: str) -> StepDefinition:
        for step in self.steps:
            if field_id in step.field_ids:
                return step
        raise UnknownFieldError(field_id)

    def resolve(self, answers: Mapping[str, AnswerValue]) -> Applicability:
        """Work out which fields apply, in flow order.

        A visibility predicate only sees answers of fields that come earlier
        in the flow and are themselves applicable, so an answer retained for
        a hidden field never keeps its dependents visible. Answers keyed by
        ids outside the flow are passed through as external context.
        """
        known = {descriptor.id for descriptor in self.all_fields}
        effective = {
            field_id: answer for field_id, answer in answers.items() if field_id not in known
        }
        by_step: dict[int, tuple[FieldDescriptor, ...]] = {}
        for step in self.steps:
            visible: list[FieldDescriptor] = []
            if step.precondition is None or step.precondition.evaluate(effective):
                for descriptor in step.fields:
                    if not descriptor.is_visible(effective):
                        continue
                    visible.append(descriptor)
                    if descriptor.id in answers:
                        effective[descriptor.id] = answers[descriptor.id]
            by_step[step.index] = tuple(visible)
        return Applicability(fields_by_step=by_step, answers=effective)

    def step_fields(
        self, step: StepDefinition, answers: Mapping[str, AnswerValue]
    ) -> tuple[FieldDescriptor, ...]:
        return self.resolve(answers).fields_by_step.get(step.index, ())

    def is_step_applicable(
        self, step: StepDefinition, answers: Mapping[str, AnswerValue]
    ) -> bool:
        return bool(self.step_fields(step, answers))

    def schema_for(
        self, step: StepDefinition, answers: Mapping[str, AnswerValue]
    ) -> CompositeSchema:
        return step.restricted_schema(self.step_fields(step, answers))

    def applicable_steps(
        self, answers: Mapping[str, AnswerValue]
    ) -> tuple[StepDefinition, ...]:
        by_step = self.resolve(answers).fields_by_step
        return tuple(step for step in self.steps if by_step.get(step.index))

    def applicable_fields(
        self, answers: Mapping[str, AnswerValue]
    ) -> tuple[FieldDescriptor, ...]:
        by_step = self.resolve(answers).fields_by_step
        return tuple(
            descriptor for step in self.steps for descriptor in by_step.get(step.index, ())
        )

    def is_field_applicable(
        self, field_id: str, answers: Mapping[str, AnswerValue]
    ) -> bool:
        self.step_of(field_id)
        return any(descriptor.id == field_id for descriptor in self.applicable_fields(answers))

    def effective_answers(
        self, answers: Mapping[str, AnswerValue]
    ) -> dict[str, AnswerValue]:
        """Answers that count under the current visibility; hidden ones dropped."""
        return self.resolve(answers).answers
