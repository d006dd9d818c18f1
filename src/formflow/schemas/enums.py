"""Enum definitions for canonical contracts."""

from __future__ import annotations

from enum import Enum


class FieldKind(str, Enum):
    TEXT = "text"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    RATING = "rating"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    FILE_UPLOAD = "file_upload"


class SubmissionStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    ANSWERED = "answered"
    NOT_ANSWERED = "not_answered"
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"


class FlowEventType(str, Enum):
    ANSWER_SET = "answer_set"
    ANSWER_CLEARED = "answer_cleared"
    STEP_CHANGED = "step_changed"
    SUBMISSION_CHANGED = "submission_changed"
    RELOADED = "reloaded"
    DISMISSED = "dismissed"


LEGACY_KIND_MAP: dict[str, FieldKind] = {
    "text": FieldKind.TEXT,
    "textarea": FieldKind.TEXT,
    "short_text": FieldKind.TEXT,
    "long_text": FieldKind.TEXT,
    "single_choice": FieldKind.SINGLE_CHOICE,
    "single-choice": FieldKind.SINGLE_CHOICE,
    "radio": FieldKind.SINGLE_CHOICE,
    "select": FieldKind.SINGLE_CHOICE,
    "multi_choice": FieldKind.MULTI_CHOICE,
    "multi-choice": FieldKind.MULTI_CHOICE,
    "multiple_choice": FieldKind.MULTI_CHOICE,
    "checkbox": FieldKind.MULTI_CHOICE,
    "rating": FieldKind.RATING,
    "stars": FieldKind.RATING,
    "number": FieldKind.NUMBER,
    "numeric": FieldKind.NUMBER,
    "boolean": FieldKind.BOOLEAN,
    "bool": FieldKind.BOOLEAN,
    "yes_no": FieldKind.BOOLEAN,
    "date": FieldKind.DATE,
    "file_upload": FieldKind.FILE_UPLOAD,
    "file-upload": FieldKind.FILE_UPLOAD,
    "upload": FieldKind.FILE_UPLOAD,
    "file": FieldKind.FILE_UPLOAD,
}

ALLOWED_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.IDLE: frozenset({SubmissionStatus.VALIDATING}),
    SubmissionStatus.VALIDATING: frozenset(
        {SubmissionStatus.SUBMITTING, SubmissionStatus.FAILED}
    ),
    SubmissionStatus.SUBMITTING: frozenset(
        {SubmissionStatus.SUCCEEDED, SubmissionStatus.FAILED}
    ),
    SubmissionStatus.FAILED: frozenset({SubmissionStatus.VALIDATING}),
    SubmissionStatus.SUCCEEDED: frozenset(),
}


def normalize_field_kind(raw_value: str | FieldKind) -> str:
    """Normalize kind labels; unknown kinds pass through for registry lookup."""
    if isinstance(raw_value, FieldKind):
        return raw_value.value
    cleaned = raw_value.strip().lower()
    if not cleaned:
        raise ValueError("Field kind must not be empty")
    normalized = LEGACY_KIND_MAP.get(cleaned)
    return normalized.value if normalized is not None else cleaned
