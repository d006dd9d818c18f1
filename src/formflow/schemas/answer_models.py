"""Answer value contracts: a tagged union keyed by answer kind."""

from __future__ import annotations

from datetime import date
from pathlib import PurePath
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, field_validator

from formflow.schemas.base import StrictSchemaModel
from formflow.schemas.enums import FieldKind, normalize_field_kind


class TextAnswer(StrictSchemaModel):
    kind: Literal["text"] = "text"
    value: str

    @property
    def payload(self) -> str:
        return self.value

    @property
    def comparable(self) -> str:
        return self.value.strip()


class SingleChoiceAnswer(StrictSchemaModel):
    kind: Literal["single_choice"] = "single_choice"
    value: str

    @property
    def payload(self) -> str:
        return self.value

    @property
    def comparable(self) -> str:
        return self.value


class MultiChoiceAnswer(StrictSchemaModel):
    kind: Literal["multi_choice"] = "multi_choice"
    value: tuple[str, ...] = ()

    @property
    def payload(self) -> list[str]:
        return list(self.value)

    @property
    def comparable(self) -> tuple[str, ...]:
        return self.value


class RatingAnswer(StrictSchemaModel):
    kind: Literal["rating"] = "rating"
    value: int

    @property
    def payload(self) -> int:
        return self.value

    @property
    def comparable(self) -> int:
        return self.value


class NumberAnswer(StrictSchemaModel):
    kind: Literal["number"] = "number"
    value: float

    @property
    def payload(self) -> float:
        return self.value

    @property
    def comparable(self) -> float:
        return self.value


class BooleanAnswer(StrictSchemaModel):
    kind: Literal["boolean"] = "boolean"
    value: bool

    @property
    def payload(self) -> bool:
        return self.value

    @property
    def comparable(self) -> bool:
        return self.value


class DateAnswer(StrictSchemaModel):
    kind: Literal["date"] = "date"
    value: date

    @property
    def payload(self) -> date:
        return self.value

    @property
    def comparable(self) -> str:
        return self.value.isoformat()


class FileUploadAnswer(StrictSchemaModel):
    """Reference to a file the user picked; bytes or a local path."""

    kind: Literal["file_upload"] = "file_upload"
    filename: str = Field(min_length=1)
    content_type: str = "application/octet-stream"
    content: bytes | None = None
    path: str | None = None
    size_bytes: int | None = Field(default=None, ge=0)

    @field_validator("content_type")
    @classmethod
    def normalize_content_type(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def size(self) -> int:
        if self.size_bytes is not None:
            return self.size_bytes
        return len(self.content) if self.content is not None else 0

    @property
    def payload(self) -> "FileUploadAnswer":
        return self

    @property
    def comparable(self) -> str:
        return self.filename


AnswerValue = Annotated[
    Union[
        TextAnswer,
        SingleChoiceAnswer,
        MultiChoiceAnswer,
        RatingAnswer,
        NumberAnswer,
        BooleanAnswer,
        DateAnswer,
        FileUploadAnswer,
    ],
    Field(discriminator="kind"),
]

ANSWER_TYPES = (
    TextAnswer,
    SingleChoiceAnswer,
    MultiChoiceAnswer,
    RatingAnswer,
    NumberAnswer,
    BooleanAnswer,
    DateAnswer,
    FileUploadAnswer,
)

ANSWER_ADAPTER: TypeAdapter[AnswerValue] = TypeAdapter(AnswerValue)


def parse_answer(data: Any) -> AnswerValue:
    """Parse a tagged mapping into an answer model."""
    if isinstance(data, dict) and "kind" in data:
        data = {**data, "kind": normalize_field_kind(data["kind"])}
    return ANSWER_ADAPTER.validate_python(data)


def coerce_answer(kind: str, raw: Any) -> AnswerValue:
    """Build an answer for a descriptor kind from a plain form value."""
    if isinstance(raw, dict):
        return parse_answer({"kind": kind, **raw})
    if kind == FieldKind.FILE_UPLOAD.value and isinstance(raw, str):
        return parse_answer({"kind": kind, "filename": PurePath(raw).name, "path": raw})
    if kind == FieldKind.MULTI_CHOICE.value and isinstance(raw, str):
        raw = [raw]
    return parse_answer({"kind": kind, "value": raw})
