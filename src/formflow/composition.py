"""Per-step schema composition from field descriptors.

Each field kind maps to a *rule generator* that turns the descriptor's
constraints into a pydantic type annotation. Composite schemas are sorted
tuples of those rules, so two compositions over the same set of fields are
equal regardless of merge order, and the pydantic model that executes the
validation is built once per distinct schema.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Annotated, Any, Literal, Optional

from annotated_types import Ge, Le, MaxLen, MinLen
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StringConstraints,
    ValidationError,
    create_model,
)

from formflow.errors import ConfigurationError, UnknownFieldKindError
from formflow.schemas.answer_models import AnswerValue, FileUploadAnswer
from formflow.schemas.enums import FieldKind
from formflow.schemas.field_models import FieldDescriptor
from formflow.schemas.flow_models import ValidationIssue

LOGGER = logging.getLogger(__name__)

RuleGenerator = Callable[[FieldDescriptor], Any]

DEFAULT_RATING_SCALE = (1, 5)


@dataclass(frozen=True)
class FieldRule:
    """Validation rule for one field id. ``annotation`` must be hashable."""

    field_id: str
    kind: str
    annotation: Any
    required: bool = True


@dataclass(frozen=True)
class UploadPolicy:
    """After-validator enforcing size and content-type limits on uploads."""

    max_bytes: int | None = None
    allowed_content_types: tuple[str, ...] = ()

    def __call__(self, upload: FileUploadAnswer) -> FileUploadAnswer:
        if self.max_bytes is not None and upload.size > self.max_bytes:
            raise ValueError(f"file exceeds {self.max_bytes} bytes")
        if self.allowed_content_types and not _content_type_allowed(
            upload.content_type, self.allowed_content_types
        ):
            allowed = ", ".join(self.allowed_content_types)
            raise ValueError(f"content type {upload.content_type} not in: {allowed}")
        return upload


def _content_type_allowed(content_type: str, allowed: tuple[str, ...]) -> bool:
    major = content_type.split("/", 1)[0]
    return any(
        pattern == content_type or pattern == f"{major}/*" for pattern in allowed
    )


def _unique_items(values: list[str]) -> list[str]:
    if len(set(values)) != len(values):
        raise ValueError("selected choices must be unique")
    return values


def _annotate(base: Any, metadata: list[Any]) -> Any:
    if not metadata:
        return base
    return Annotated[(base, *metadata)]


def text_rule(field: FieldDescriptor) -> Any:
    constraints = field.constraints
    min_length = constraints.min_length
    if constraints.required and not min_length:
        min_length = 1
    return Annotated[
        str,
        StringConstraints(
            strip_whitespace=True,
            min_length=min_length,
            max_length=constraints.max_length,
            pattern=constraints.pattern,
        ),
    ]


def single_choice_rule(field: FieldDescriptor) -> Any:
    if field.constraints.choices:
        return Literal[tuple(sorted(field.constraints.choices))]
    return Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def multi_choice_rule(field: FieldDescriptor) -> Any:
    constraints = field.constraints
    item: Any = (
        Literal[tuple(sorted(constraints.choices))] if constraints.choices else str
    )
    min_choices = constraints.min_choices
    if constraints.required and not min_choices:
        min_choices = 1
    metadata: list[Any] = []
    if min_choices:
        metadata.append(MinLen(min_choices))
    if constraints.max_choices is not None:
        metadata.append(MaxLen(constraints.max_choices))
    metadata.append(AfterValidator(_unique_items))
    return _annotate(list[item], metadata)


def rating_rule(field: FieldDescriptor) -> Any:
    low, high = DEFAULT_RATING_SCALE
    if field.constraints.min_value is not None:
        low = int(field.constraints.min_value)
    if field.constraints.max_value is not None:
        high = int(field.constraints.max_value)
    return Annotated[int, Ge(low), Le(high)]


def number_rule(field: FieldDescriptor) -> Any:
    metadata: list[Any] = []
    if field.constraints.min_value is not None:
        metadata.append(Ge(field.constraints.min_value))
    if field.constraints.max_value is not None:
        metadata.append(Le(field.constraints.max_value))
    return _annotate(float, metadata)


def boolean_rule(field: FieldDescriptor) -> Any:
    del field
    return StrictBool


def date_rule(field: FieldDescriptor) -> Any:
    del field
    return date


def file_upload_rule(field: FieldDescriptor) -> Any:
    policy = UploadPolicy(
        max_bytes=field.constraints.max_bytes,
        allowed_content_types=tuple(sorted(field.constraints.allowed_content_types)),
    )
    return Annotated[FileUploadAnswer, AfterValidator(policy)]


class RuleGeneratorRegistry:
    """Maps a field kind to the generator producing its validation rule."""

    def __init__(self, generators: Mapping[str, RuleGenerator] | None = None) -> None:
        self._generators: dict[str, RuleGenerator] = dict(generators or {})

    def register(self, kind: str | FieldKind, generator: RuleGenerator) -> None:
        key = kind.value if isinstance(kind, FieldKind) else kind
        self._generators[key] = generator

    def kinds(self) -> frozenset[str]:
        return frozenset(self._generators)

    def rule_for(self, field: FieldDescriptor) -> FieldRule:
        generator = self._generators.get(field.kind)
        if generator is None:
            raise UnknownFieldKindError(field.id, field.kind)
        return FieldRule(
            field_id=field.id,
            kind=field.kind,
            annotation=generator(field),
            required=field.constraints.required,
        )


def default_rule_registry() -> RuleGeneratorRegistry:
    """Registry covering every built-in field kind."""
    return RuleGeneratorRegistry(
        {
            FieldKind.TEXT.value: text_rule,
            FieldKind.SINGLE_CHOICE.value: single_choice_rule,
            FieldKind.MULTI_CHOICE.value: multi_choice_rule,
            FieldKind.RATING.value: rating_rule,
            FieldKind.NUMBER.value: number_rule,
            FieldKind.BOOLEAN.value: boolean_rule,
            FieldKind.DATE.value: date_rule,
            FieldKind.FILE_UPLOAD.value: file_upload_rule,
        }
    )


@dataclass(frozen=True)
class CompositeSchema:
    """Order-independent set of field rules keyed by field id."""

    rules: tuple[FieldRule, ...] = ()

    def __post_init__(self) -> None:
        by_id: dict[str, FieldRule] = {}
        for rule in self.rules:
            existing = by_id.get(rule.field_id)
            if existing is not None and existing != rule:
                raise ConfigurationError(
                    f"Conflicting rules for field '{rule.field_id}'"
                )
            by_id[rule.field_id] = rule
        object.__setattr__(
            self, "rules", tuple(by_id[field_id] for field_id in sorted(by_id))
        )

    @property
    def field_ids(self) -> tuple[str, ...]:
        return tuple(rule.field_id for rule in self.rules)

    def merge(self, other: "CompositeSchema") -> "CompositeSchema":
        return CompositeSchema(self.rules + other.rules)

    __or__ = merge

    def validate(self, answers: Mapping[str, AnswerValue]) -> list[ValidationIssue]:
        """Return per-field issues; an empty list means the answers pass."""
        issues: list[ValidationIssue] = []
        data: dict[str, Any] = {}
        for rule in self.rules:
            answer = answers.get(rule.field_id)
            if answer is None:
                continue
            if answer.kind != rule.kind:
                issues.append(
                    ValidationIssue(
                        field_id=rule.field_id,
                        code="kind_mismatch",
                        message=f"expected a {rule.kind} answer, got {answer.kind}",
                    )
                )
                continue
            data[rule.field_id] = answer.payload
        if not self.rules:
            return issues
        try:
            _model_for(self).model_validate(data)
        except ValidationError as exc:
            mismatched = {issue.field_id for issue in issues}
            issues.extend(
                issue
                for issue in _issues_from(exc, self)
                if issue.field_id not in mismatched
            )
        return sorted(issues, key=lambda issue: issue.field_id)


def _issues_from(exc: ValidationError, schema: CompositeSchema) -> list[ValidationIssue]:
    known = set(schema.field_ids)
    issues: list[ValidationIssue] = []
    for error in exc.errors():
        location = error.get("loc") or ("",)
        field_id = str(location[0])
        if field_id not in known:
            LOGGER.debug("Dropping validation error outside schema: %s", error)
            continue
        issues.append(
            ValidationIssue(field_id=field_id, code=error["type"], message=error["msg"])
        )
    return issues


@lru_cache(maxsize=256)
def _model_for(schema: CompositeSchema) -> type[BaseModel]:
    definitions: dict[str, Any] = {}
    for position, rule in enumerate(schema.rules):
        if rule.required:
            definitions[f"f{position}"] = (rule.annotation, Field(alias=rule.field_id))
        else:
            definitions[f"f{position}"] = (
                Optional[rule.annotation],
                Field(default=None, alias=rule.field_id),
            )
    return create_model(
        "CompositeAnswers",
        __config__=ConfigDict(extra="ignore", arbitrary_types_allowed=True),
        **definitions,
    )


class SchemaComposer:
    """Builds composite schemas and memoizes them per set of fields."""

    def __init__(self, registry: RuleGeneratorRegistry | None = None) -> None:
        self.registry = registry or default_rule_registry()
        self._cache: dict[frozenset[FieldDescriptor], CompositeSchema] = {}

    def compose(self, fields: Iterable[FieldDescriptor]) -> CompositeSchema:
        """Compose one schema over ``fields``; unknown kinds raise."""
        key = frozenset(fields)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        schema = CompositeSchema(tuple(self.registry.rule_for(field) for field in key))
        self._cache[key] = schema
        return schema
