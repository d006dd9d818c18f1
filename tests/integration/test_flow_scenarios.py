"""End-to-end flow scenarios across the machine and coordinator."""

from __future__ import annotations

import asyncio
from pathlib import Path

from formflow.flow import FormFlow
from formflow.observability.transition_store import TransitionStore
from formflow.schemas.answer_models import FileUploadAnswer
from formflow.schemas.enums import FlowEventType, SubmissionStatus
from formflow.schemas.field_models import FieldDescriptor
from formflow.schemas.flow_models import FlowEvent, SubmissionPayload
from formflow.steps import FlowDefinition, LeadStep
from formflow.submission import SubmissionCoordinator


class _Backend:
    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay = delay
        self.payloads: list[SubmissionPayload] = []

    async def __call__(self, payload: SubmissionPayload) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.payloads.append(payload)
        return f"sub-{len(self.payloads)}"


class _FlakyUploader:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def upload(self, answer: FileUploadAnswer, *, field_id: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("storage offline")
        return f"uploads/{field_id}/{answer.filename}"


def _questionnaire() -> FlowDefinition:
    lead = LeadStep(
        key="lead",
        title="About you",
        fields=(FieldDescriptor(id="email", kind="text"),),
    )
    fields = [
        FieldDescriptor.model_validate(
            {
                "id": "question_a",
                "kind": "single_choice",
                "step": "a",
                "constraints": {"choices": ["yes", "no"]},
            }
        ),
        FieldDescriptor.model_validate(
            {
                "id": "question_b",
                "kind": "text",
                "step": "b",
                "visible_when": [{"field": "question_a", "op": "equals", "value": "yes"}],
            }
        ),
    ]
    return FlowDefinition.build("questionnaire", fields, lead=lead)


def test_branch_skipping_submits_without_hidden_answers() -> None:
    """Answering "no" skips question B and submits lead plus A only."""
    backend = _Backend()
    flow = FormFlow(_questionnaire(), SubmissionCoordinator(backend), flow_id="q-1")

    flow.set_answer("email", "ada@example.com")
    assert asyncio.run(flow.advance()).moved
    flow.set_answer("question_a", "yes")
    assert asyncio.run(flow.advance()).moved
    assert flow.current_step.key == "b"
    flow.set_answer("question_b", "details")

    flow.retreat()
    flow.set_answer("question_a", "no")
    result = asyncio.run(flow.advance())

    assert result.submitted is True
    assert flow.submission.status == SubmissionStatus.SUCCEEDED
    assert set(backend.payloads[0].answers) == {"email", "question_a"}
    assert backend.payloads[0].flow_key == "questionnaire"
    assert flow.answers["question_b"].value == "details"


def test_upload_failure_leaves_flow_retryable(tmp_path: Path) -> None:
    """A failing upload fails the attempt; a later attempt succeeds."""
    backend = _Backend()
    uploader = _FlakyUploader(failures=1)
    store = TransitionStore(tmp_path / "transitions.db")
    definition = FlowDefinition.build(
        "application",
        [
            FieldDescriptor(id="name", kind="text", step="apply"),
            FieldDescriptor(id="cv", kind="upload", step="apply"),
        ],
    )
    coordinator = SubmissionCoordinator(backend, uploader=uploader, transition_recorder=store)
    flow = FormFlow(definition, coordinator, flow_id="app-1")
    flow.set_answer("name", "Ada")
    flow.set_answer("cv", {"filename": "cv.pdf", "content": b"%PDF-1.7"})

    first = asyncio.run(flow.advance())
    assert first.submitted is False
    assert flow.submission.status == SubmissionStatus.FAILED
    assert flow.submission.error_type == "transform"
    assert backend.payloads == []

    second = asyncio.run(flow.advance())
    assert second.submitted is True
    assert flow.submission.attempts == 2
    assert backend.payloads[0].answers["cv"].value == "uploads/cv/cv.pdf"

    transitions = [(record.from_state, record.to_state) for record in store.list_transitions("app-1")]
    assert transitions == [
        ("idle", "validating"),
        ("validating", "submitting"),
        ("submitting", "failed"),
        ("failed", "validating"),
        ("validating", "submitting"),
        ("submitting", "succeeded"),
    ]


def test_dismissed_flow_ignores_late_submission_outcome() -> None:
    """Outcomes that land after dismissal must not update the flow."""
    backend = _Backend(delay=0.02)
    definition = FlowDefinition.build("quick", [FieldDescriptor(id="name", kind="text")])
    flow = FormFlow(definition, SubmissionCoordinator(backend), flow_id="quick-1")
    flow.set_answer("name", "Ada")
    events: list[FlowEvent] = []
    flow.subscribe(events.append)

    async def scenario() -> None:
        task = asyncio.create_task(flow.advance())
        await asyncio.sleep(0.005)
        flow.dismiss()
        result = await task
        assert result.submitted is False

    asyncio.run(scenario())

    assert flow.active is False
    assert flow.submission.status == SubmissionStatus.SUBMITTING
    assert events[-1].type == FlowEventType.DISMISSED
    assert len(backend.payloads) == 1


def test_submission_events_are_published_to_listeners() -> None:
    """Listeners should observe every submission status change."""
    definition = FlowDefinition.build("quick", [FieldDescriptor(id="name", kind="text")])
    flow = FormFlow(definition, SubmissionCoordinator(_Backend()), flow_id="quick-2")
    statuses: list[SubmissionStatus] = []
    flow.subscribe(
        lambda event: statuses.append(event.state.submission.status)
        if event.type == FlowEventType.SUBMISSION_CHANGED
        else None
    )
    flow.set_answer("name", "Ada")
    asyncio.run(flow.advance())

    assert statuses == [
        SubmissionStatus.VALIDATING,
        SubmissionStatus.SUBMITTING,
        SubmissionStatus.SUCCEEDED,
    ]
