"""Submission coordination: re-validate, transform, hand off exactly once."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence

from formflow.composition import CompositeSchema, SchemaComposer
from formflow.errors import (
    AlreadySubmittedError,
    ConfigurationError,
    InvalidTransitionError,
    TransformError,
)
from formflow.observability.tracing import NoOpTracer, TracerProtocol
from formflow.observability.transition_store import TransitionRecorder
from formflow.schemas.answer_models import AnswerValue
from formflow.schemas.enums import ALLOWED_TRANSITIONS, SubmissionStatus
from formflow.schemas.field_models import FieldDescriptor
from formflow.schemas.flow_models import (
    FailureType,
    SubmissionAnswer,
    SubmissionOutcome,
    SubmissionPayload,
    SubmissionState,
    ValidationIssue,
)
from formflow.security.redaction import redact_text
from formflow.transformers import (
    FileUploader,
    TransformContext,
    TransformerRegistry,
    default_registry,
)

LOGGER = logging.getLogger(__name__)

SubmitOperation = Callable[[SubmissionPayload], Awaitable[str]]
StateListener = Callable[[SubmissionState], None]

IN_FLIGHT = frozenset({SubmissionStatus.VALIDATING, SubmissionStatus.SUBMITTING})


class SubmissionCoordinator:
    """Drives one flow's submission attempts through their lifecycle.

    The coordinator never retries on its own; a failed attempt leaves the
    state at ``failed`` and the caller may submit again.
    """

    def __init__(
        self,
        submit_operation: SubmitOperation,
        *,
        registry: TransformerRegistry | None = None,
        composer: SchemaComposer | None = None,
        uploader: FileUploader | None = None,
        timeout_seconds: float | None = None,
        max_concurrent_transforms: int = 8,
        tracer: TracerProtocol | None = None,
        transition_recorder: TransitionRecorder | None = None,
    ) -> None:
        if max_concurrent_transforms < 1:
            raise ValueError("max_concurrent_transforms must be >= 1")
        self.submit_operation = submit_operation
        self.registry = registry or default_registry()
        self.composer = composer or SchemaComposer()
        self.uploader = uploader
        self.timeout_seconds = timeout_seconds
        self.max_concurrent_transforms = max_concurrent_transforms
        self.tracer = tracer or NoOpTracer()
        self.transition_recorder = transition_recorder
        self._state = SubmissionState()

    @property
    def state(self) -> SubmissionState:
        return self._state.model_copy(deep=True)

    @property
    def status(self) -> SubmissionStatus:
        return self._state.status

    def ensure_ready(self, fields: Sequence[FieldDescriptor]) -> None:
        """Raise when a submission with ``fields`` cannot start."""
        if self._state.status == SubmissionStatus.SUCCEEDED:
            raise AlreadySubmittedError(
                f"Submission {self._state.submission_id} already succeeded"
            )
        if self._state.status in IN_FLIGHT:
            raise InvalidTransitionError("A submission attempt is already in flight")
        self.registry.ensure_registered(descriptor.kind for descriptor in fields)

    async def submit(
        self,
        answers: Mapping[str, AnswerValue],
        applicable_fields: Sequence[FieldDescriptor],
        *,
        flow_key: str,
        flow_id: str,
        generation: int = 0,
        schema: CompositeSchema | None = None,
        on_change: StateListener | None = None,
    ) -> SubmissionOutcome:
        """Run one submission attempt over the applicable answers."""
        self.ensure_ready(applicable_fields)
        snapshot = {
            descriptor.id: answers[descriptor.id].model_copy(deep=True)
            for descriptor in applicable_fields
            if descriptor.id in answers
        }
        attempt = self._state.attempts + 1
        attempt_id = f"{flow_id}:{attempt}"
        self._state.attempts = attempt
        self.tracer.start_attempt(
            attempt_id=attempt_id,
            metadata={"flow_key": flow_key, "fields": len(applicable_fields)},
        )
        try:
            return await self._run_attempt(
                snapshot,
                applicable_fields,
                flow_key=flow_key,
                flow_id=flow_id,
                generation=generation,
                attempt=attempt,
                attempt_id=attempt_id,
                schema=schema,
                on_change=on_change,
            )
        finally:
            self.tracer.finish_attempt(
                attempt_id=attempt_id, metadata={"status": self._state.status.value}
            )
            self.tracer.flush()

    async def _run_attempt(
        self,
        snapshot: dict[str, AnswerValue],
        fields: Sequence[FieldDescriptor],
        *,
        flow_key: str,
        flow_id: str,
        generation: int,
        attempt: int,
        attempt_id: str,
        schema: CompositeSchema | None,
        on_change: StateListener | None,
    ) -> SubmissionOutcome:
        def move(to_status: SubmissionStatus, reason: str) -> None:
            self._transition(
                to_status,
                reason=reason,
                flow_id=flow_id,
                generation=generation,
                on_change=on_change,
            )

        move(SubmissionStatus.VALIDATING, f"Attempt {attempt} started")
        issues = (schema or self.composer.compose(fields)).validate(snapshot)
        self.tracer.record_stage(
            attempt_id=attempt_id,
            stage="validate",
            metadata={"status": "failed" if issues else "completed", "issues": len(issues)},
        )
        if issues:
            return self._fail(
                "validation",
                "; ".join(f"{issue.field_id}: {issue.message}" for issue in issues),
                issues=issues,
                move=move,
            )

        move(SubmissionStatus.SUBMITTING, "Answers validated")
        try:
            transformed = await self._transform_all(
                snapshot, fields, flow_key=flow_key, flow_id=flow_id
            )
        except ConfigurationError as exc:
            self._fail("transform", str(exc), move=move)
            raise
        except asyncio.CancelledError:
            self._fail("transform", "Transform cancelled", move=move)
            raise
        except TransformError as exc:
            self.tracer.record_stage(
                attempt_id=attempt_id, stage="transform", metadata={"status": "failed"}
            )
            return self._fail("transform", str(exc), move=move)
        self.tracer.record_stage(
            attempt_id=attempt_id,
            stage="transform",
            metadata={"status": "completed", "answers": len(transformed)},
        )

        payload = SubmissionPayload(
            flow_key=flow_key,
            flow_id=flow_id,
            attempt=attempt,
            answers=transformed,
        )
        try:
            async with asyncio.timeout(self.timeout_seconds):
                submission_id = await self.submit_operation(payload)
        except TimeoutError:
            reason = "Submit operation timed out"
            if self.timeout_seconds is not None:
                reason = f"{reason} after {self.timeout_seconds} second(s)"
            return self._fail("submission", reason, move=move)
        except asyncio.CancelledError:
            self._fail("submission", "Submit operation cancelled", move=move)
            raise
        except Exception as exc:  # noqa: BLE001
            return self._fail("submission", f"Submit operation failed: {exc}", move=move)
        if not isinstance(submission_id, str) or not submission_id:
            return self._fail(
                "submission", "Submit operation returned no submission id", move=move
            )

        self._state.submission_id = submission_id
        self._state.reason = None
        self._state.error_type = None
        self._state.issues = []
        move(SubmissionStatus.SUCCEEDED, f"Submitted as {submission_id}")
        self.tracer.record_stage(
            attempt_id=attempt_id,
            stage="submit",
            metadata={"status": "completed", "submission_id": submission_id},
        )
        LOGGER.info("Flow %s submitted as %s", flow_id, submission_id)
        return SubmissionOutcome(
            status=SubmissionStatus.SUCCEEDED, submission_id=submission_id
        )

    async def _transform_all(
        self,
        snapshot: Mapping[str, AnswerValue],
        fields: Sequence[FieldDescriptor],
        *,
        flow_key: str,
        flow_id: str,
    ) -> dict[str, SubmissionAnswer]:
        semaphore = asyncio.Semaphore(self.max_concurrent_transforms)
        answered = [descriptor for descriptor in fields if descriptor.id in snapshot]

        async def run_one(descriptor: FieldDescriptor) -> SubmissionAnswer:
            context = TransformContext(
                flow_key=flow_key,
                flow_id=flow_id,
                field=descriptor,
                uploader=self.uploader,
            )
            async with semaphore:
                try:
                    return await self.registry.transform(snapshot[descriptor.id], context)
                except (TransformError, ConfigurationError):
                    raise
                except Exception as exc:  # noqa: BLE001
                    raise TransformError(descriptor.id, str(exc)) from exc

        results = await asyncio.gather(
            *(run_one(descriptor) for descriptor in answered), return_exceptions=True
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        for failure in failures:
            if isinstance(failure, (ConfigurationError, asyncio.CancelledError)):
                raise failure
        if failures:
            raise failures[0]
        return {
            descriptor.id: result
            for descriptor, result in zip(answered, results, strict=True)
        }

    def _fail(
        self,
        error_type: FailureType,
        reason: str,
        *,
        move: Callable[[SubmissionStatus, str], None],
        issues: Sequence[ValidationIssue] = (),
    ) -> SubmissionOutcome:
        redacted = redact_text(reason)
        self._state.reason = redacted
        self._state.error_type = error_type
        self._state.issues = list(issues)
        move(SubmissionStatus.FAILED, f"{error_type} failure: {redacted}")
        LOGGER.warning("Submission failed (%s): %s", error_type, redacted)
        return SubmissionOutcome(
            status=SubmissionStatus.FAILED,
            error_type=error_type,
            reason=redacted,
            issues=list(issues),
        )

    def _transition(
        self,
        to_status: SubmissionStatus,
        *,
        reason: str,
        flow_id: str,
        generation: int,
        on_change: StateListener | None,
    ) -> None:
        from_status = self._state.status
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidTransitionError(
                f"Illegal submission transition {from_status.value} -> {to_status.value}"
            )
        self._state.status = to_status
        LOGGER.debug("Flow %s submission %s -> %s", flow_id, from_status.value, to_status.value)
        if self.transition_recorder is not None:
            self.transition_recorder.record_transition(
                flow_id=flow_id,
                generation=generation,
                from_state=from_status.value,
                to_state=to_status.value,
                reason=redact_text(reason),
            )
        if on_change is not None:
            on_change(self.state)
