"""Flow state, submission and event contracts."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import Field

from formflow.constants import SCHEMA_VERSION
from formflow.schemas.answer_models import AnswerValue
from formflow.schemas.base import StrictSchemaModel
from formflow.schemas.enums import FlowEventType, SubmissionStatus

FailureType = Literal["validation", "transform", "submission"]


class ValidationIssue(StrictSchemaModel):
    """Problem with a single field's answer."""

    field_id: str = Field(min_length=1)
    code: str = Field(min_length=1)
    message: str = Field(min_length=1)


class SubmissionState(StrictSchemaModel):
    """Submission lifecycle as seen by the presentation layer."""

    status: SubmissionStatus = SubmissionStatus.IDLE
    reason: str | None = None
    error_type: FailureType | None = None
    issues: list[ValidationIssue] = Field(default_factory=list)
    submission_id: str | None = None
    attempts: int = Field(default=0, ge=0)


class FlowState(StrictSchemaModel):
    """Snapshot of a flow instance."""

    schema_version: str = SCHEMA_VERSION
    flow_id: str = Field(min_length=1)
    flow_key: str = Field(min_length=1)
    generation: int = Field(default=0, ge=0)
    active: bool = True
    step_index: int = Field(default=0, ge=0)
    answers: dict[str, AnswerValue] = Field(default_factory=dict)
    visited_steps: set[int] = Field(default_factory=set)
    dirty: bool = False
    submission: SubmissionState = Field(default_factory=SubmissionState)


class SubmissionAnswer(StrictSchemaModel):
    """Submission-ready value for one field."""

    field_id: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    value: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SubmissionPayload(StrictSchemaModel):
    """Transformed answer set handed to the external submit operation."""

    schema_version: str = SCHEMA_VERSION
    flow_key: str = Field(min_length=1)
    flow_id: str = Field(min_length=1)
    attempt: int = Field(ge=1)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    answers: dict[str, SubmissionAnswer] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SubmissionOutcome(StrictSchemaModel):
    """Result of one submission attempt."""

    status: Literal[SubmissionStatus.SUCCEEDED, SubmissionStatus.FAILED]
    submission_id: str | None = None
    error_type: FailureType | None = None
    reason: str | None = None
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == SubmissionStatus.SUCCEEDED


class AdvanceResult(StrictSchemaModel):
    """What happened on a call to ``advance``."""

    moved: bool
    step_index: int = Field(ge=0)
    issues: list[ValidationIssue] = Field(default_factory=list)
    submitted: bool = False
    submission: SubmissionState = Field(default_factory=SubmissionState)


class FlowEvent(StrictSchemaModel):
    """State-change notification delivered to subscribers."""

    type: FlowEventType
    flow_id: str
    generation: int
    state: FlowState
    field_id: str | None = None
    previous_step_index: int | None = None
