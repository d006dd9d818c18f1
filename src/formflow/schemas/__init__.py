"""Schema contract exports."""

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
    coerce_answer,
    parse_answer,
)
from formflow.schemas.enums import (
    ConditionOperator,
    FieldKind,
    FlowEventType,
    SubmissionStatus,
)
from formflow.schemas.field_models import (
    Condition,
    FieldConstraints,
    FieldDescriptor,
    VisibilityRule,
)
from formflow.schemas.flow_models import (
    AdvanceResult,
    FlowEvent,
    FlowState,
    SubmissionAnswer,
    SubmissionOutcome,
    SubmissionPayload,
    SubmissionState,
    ValidationIssue,
)

__all__ = [
    "AdvanceResult",
    "AnswerValue",
    "BooleanAnswer",
    "Condition",
    "ConditionOperator",
    "DateAnswer",
    "FieldConstraints",
    "FieldDescriptor",
    "FieldKind",
    "FileUploadAnswer",
    "FlowEvent",
    "FlowEventType",
    "FlowState",
    "MultiChoiceAnswer",
    "NumberAnswer",
    "RatingAnswer",
    "SingleChoiceAnswer",
    "SubmissionAnswer",
    "SubmissionOutcome",
    "SubmissionPayload",
    "SubmissionState",
    "SubmissionStatus",
    "TextAnswer",
    "ValidationIssue",
    "VisibilityRule",
    "coerce_answer",
    "parse_answer",
]
