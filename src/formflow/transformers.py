"""Answer transformer registry: answer kind -> submission-ready value."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from formflow.composition import DEFAULT_RATING_SCALE
from formflow.errors import TransformError, UnregisteredTransformerError
from formflow.schemas.answer_models import (
    AnswerValue,
    BooleanAnswer,
    DateAnswer,
    FileUploadAnswer,
    MultiChoiceAnswer,
    NumberAnswer,
    RatingAnswer,
    SingleChoiceAnswer,
    TextAnswer,
)
from formflow.schemas.enums import FieldKind
from formflow.schemas.field_models import FieldDescriptor
from formflow.schemas.flow_models import SubmissionAnswer


class FileUploader(Protocol):
    """Collaborator storing uploaded files and returning a reference."""

    async def upload(self, answer: FileUploadAnswer, *, field_id: str) -> str:
        """Store the file and return a URL or storage key."""


@dataclass(frozen=True)
class TransformContext:
    """Per-answer context handed to transformers."""

    flow_key: str
    flow_id: str
    field: FieldDescriptor
    uploader: FileUploader | None = None


Transformer = Callable[
    [AnswerValue, TransformContext], SubmissionAnswer | Awaitable[SubmissionAnswer]
]


def _answer(context: TransformContext, value: Any, **metadata: Any) -> SubmissionAnswer:
    return SubmissionAnswer(
        field_id=context.field.id,
        kind=context.field.kind,
        value=value,
        metadata=metadata,
    )


def transform_text(answer: TextAnswer, context: TransformContext) -> SubmissionAnswer:
    return _answer(context, answer.value.strip())


def transform_single_choice(
    answer: SingleChoiceAnswer, context: TransformContext
) -> SubmissionAnswer:
    return _answer(context, answer.value)


def transform_multi_choice(
    answer: MultiChoiceAnswer, context: TransformContext
) -> SubmissionAnswer:
    choices = context.field.constraints.choices
    selected = list(answer.value)
    if choices:
        # declared option order, not click order
        selected.sort(key=lambda item: choices.index(item) if item in choices else len(choices))
    return _answer(context, selected, count=len(selected))


def transform_rating(answer: RatingAnswer, context: TransformContext) -> SubmissionAnswer:
    constraints = context.field.constraints
    low = int(constraints.min_value) if constraints.min_value is not None else DEFAULT_RATING_SCALE[0]
    high = int(constraints.max_value) if constraints.max_value is not None else DEFAULT_RATING_SCALE[1]
    span = high - low
    normalized = (answer.value - low) / span if span else 1.0
    return _answer(
        context,
        answer.value,
        scale_min=low,
        scale_max=high,
        normalized=round(normalized, 4),
    )


def transform_number(answer: NumberAnswer, context: TransformContext) -> SubmissionAnswer:
    value: float | int = answer.value
    if float(value).is_integer():
        value = int(value)
    return _answer(context, value)


def transform_boolean(answer: BooleanAnswer, context: TransformContext) -> SubmissionAnswer:
    return _answer(context, answer.value)


def transform_date(answer: DateAnswer, context: TransformContext) -> SubmissionAnswer:
    return _answer(context, answer.value.isoformat())


async def transform_file_upload(
    answer: FileUploadAnswer, context: TransformContext
) -> SubmissionAnswer:
    if context.uploader is None:
        raise TransformError(context.field.id, "no file uploader configured")
    reference = await context.uploader.upload(answer, field_id=context.field.id)
    return _answer(
        context,
        reference,
        filename=answer.filename,
        content_type=answer.content_type,
        size_bytes=answer.size,
    )


class TransformerRegistry:
    """Maps an answer kind to its transformer."""

    def __init__(self, transformers: Mapping[str, Transformer] | None = None) -> None:
        self._transformers: dict[str, Transformer] = dict(transformers or {})

    def register(self, kind: str | FieldKind, transformer: Transformer) -> None:
        key = kind.value if isinstance(kind, FieldKind) else kind
        self._transformers[key] = transformer

    def kinds(self) -> frozenset[str]:
        return frozenset(self._transformers)

    def get(self, kind: str) -> Transformer:
        transformer = self._transformers.get(kind)
        if transformer is None:
            raise UnregisteredTransformerError([kind])
        return transformer

    def ensure_registered(self, kinds: Iterable[str]) -> None:
        """Fail fast when any kind lacks a transformer."""
        missing = {kind for kind in kinds if kind not in self._transformers}
        if missing:
            raise UnregisteredTransformerError(missing)

    async def transform(
        self, answer: AnswerValue, context: TransformContext
    ) -> SubmissionAnswer:
        """Run the transformer for ``context.field.kind``, awaiting if needed."""
        transformer = self.get(context.field.kind)
        result = transformer(answer, context)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, SubmissionAnswer):
            raise TransformError(
                context.field.id,
                f"transformer returned {type(result).__name__}, expected SubmissionAnswer",
            )
        return result


def default_registry() -> TransformerRegistry:
    """Registry covering every built-in answer kind."""
    return TransformerRegistry(
        {
            FieldKind.TEXT.value: transform_text,
            FieldKind.SINGLE_CHOICE.value: transform_single_choice,
            FieldKind.MULTI_CHOICE.value: transform_multi_choice,
            FieldKind.RATING.value: transform_rating,
            FieldKind.NUMBER.value: transform_number,
            FieldKind.BOOLEAN.value: transform_boolean,
            FieldKind.DATE.value: transform_date,
            FieldKind.FILE_UPLOAD.value: transform_file_upload,
        }
    )
