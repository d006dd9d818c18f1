"""Field descriptor contracts and visibility predicates."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import Field, field_validator, model_validator

from formflow.schemas.base import FrozenSchemaModel
from formflow.schemas.enums import ConditionOperator, normalize_field_kind

if TYPE_CHECKING:
    from formflow.schemas.answer_models import AnswerValue

FIELD_ID_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(_freeze(item) for item in value)
    return value


class FieldConstraints(FrozenSchemaModel):
    """Kind-specific parameters. Irrelevant keys are ignored by rule generators."""

    required: bool = True
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=1)
    pattern: str | None = None
    choices: tuple[str, ...] = ()
    min_choices: int | None = Field(default=None, ge=0)
    max_choices: int | None = Field(default=None, ge=1)
    min_value: float | None = None
    max_value: float | None = None
    max_bytes: int | None = Field(default=None, gt=0)
    allowed_content_types: tuple[str, ...] = ()

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"Invalid pattern {value!r}: {exc}") from exc
        return value

    @model_validator(mode="after")
    def validate_bounds(self) -> "FieldConstraints":
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError("min_length cannot exceed max_length")
        if (
            self.min_choices is not None
            and self.max_choices is not None
            and self.min_choices > self.max_choices
        ):
            raise ValueError("min_choices cannot exceed max_choices")
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value cannot exceed max_value")
        if len(set(self.choices)) != len(self.choices):
            raise ValueError("choices must be unique")
        return self


class Condition(FrozenSchemaModel):
    """Single comparison against the current answer of another field."""

    field: str = Field(min_length=1)
    op: ConditionOperator = ConditionOperator.EQUALS
    value: Any = None

    @field_validator("value", mode="before")
    @classmethod
    def freeze_value(cls, value: Any) -> Any:
        return _freeze(value)

    def evaluate(self, answers: Mapping[str, "AnswerValue"]) -> bool:
        answer = answers.get(self.field)
        left = answer.comparable if answer is not None else None
        if self.op == ConditionOperator.ANSWERED:
            return answer is not None
        if self.op == ConditionOperator.NOT_ANSWERED:
            return answer is None
        if self.op == ConditionOperator.IS_TRUE:
            return bool(left) is True
        if self.op == ConditionOperator.IS_FALSE:
            return bool(left) is False
        if self.op == ConditionOperator.EQUALS:
            return _matches(left, self.value)
        if self.op == ConditionOperator.NOT_EQUALS:
            return not _matches(left, self.value)
        options = self.value if isinstance(self.value, tuple) else (self.value,)
        hit = any(_matches(left, option) for option in options)
        return hit if self.op == ConditionOperator.IN else not hit


def _matches(left: Any, right: Any) -> bool:
    # multi-choice answers compare as "selection includes"
    if isinstance(left, tuple) and not isinstance(right, tuple):
        return right in left
    return left == right


class VisibilityRule(FrozenSchemaModel):
    """Conjunction of conditions; an empty rule is always visible."""

    all: tuple[Condition, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def accept_shorthand(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"all": list(data)}
        if isinstance(data, Mapping) and "field" in data:
            return {"all": [data]}
        return data

    def evaluate(self, answers: Mapping[str, "AnswerValue"]) -> bool:
        return all(condition.evaluate(answers) for condition in self.all)

    @property
    def referenced_fields(self) -> frozenset[str]:
        return frozenset(condition.field for condition in self.all)


class FieldDescriptor(FrozenSchemaModel):
    """Static description of one input."""

    id: str = Field(min_length=1)
    kind: str
    label: str | None = None
    step: str | None = None
    constraints: FieldConstraints = Field(default_factory=FieldConstraints)
    visible_when: VisibilityRule | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        if not FIELD_ID_PATTERN.match(value):
            raise ValueError(f"Invalid field id: {value!r}")
        return value

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, value: Any) -> str:
        return normalize_field_kind(value)

    @model_validator(mode="after")
    def validate_self_reference(self) -> "FieldDescriptor":
        if self.visible_when is not None and self.id in self.visible_when.referenced_fields:
            raise ValueError(f"Field '{self.id}' cannot depend on its own answer")
        return self

    def is_visible(self, answers: Mapping[str, "AnswerValue"]) -> bool:
        """Evaluate the visibility predicate against current answers."""
        return self.visible_when is None or self.visible_when.evaluate(answers)
