"""Runner facade tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

from formflow.runner import FormFlowRunner, drive
from formflow.schemas.enums import SubmissionStatus
from formflow.schemas.field_models import FieldDescriptor
from formflow.schemas.flow_models import SubmissionPayload
from formflow.steps import FlowDefinition


def _definition() -> FlowDefinition:
    return FlowDefinition.build(
        "survey",
        [
            FieldDescriptor(id="satisfied", kind="boolean", step="one"),
            FieldDescriptor.model_validate(
                {
                    "id": "complaint",
                    "kind": "text",
                    "step": "one",
                    "visible_when": {"field": "satisfied", "op": "is_false"},
                }
            ),
            FieldDescriptor(id="score", kind="rating", step="two"),
        ],
    )


def test_runner_applies_config_and_records_transitions(tmp_path: Path) -> None:
    """Configured runners should build coordinators from settings."""
    db_path = tmp_path / "transitions.db"
    runner = FormFlowRunner(
        env={"FORMFLOW_TRANSITIONS_DB": str(db_path)},
        cli_overrides={"timeout_seconds": 2.5},
    )
    payloads: list[SubmissionPayload] = []

    async def accept(payload: SubmissionPayload) -> str:
        payloads.append(payload)
        return "sub-7"

    flow = runner.start(_definition(), accept, flow_id="survey-1")
    assert flow.coordinator.timeout_seconds == 2.5

    result = asyncio.run(drive(flow, {"satisfied": True, "complaint": "n/a", "score": 5}))

    assert result.submitted is True
    assert result.submission.status == SubmissionStatus.SUCCEEDED
    assert set(payloads[0].answers) == {"satisfied", "score"}
    assert runner.transition_store is not None
    assert len(runner.transition_store.list_transitions("survey-1")) == 3


def test_drive_stops_on_validation_issues(tmp_path: Path) -> None:
    """drive should return the failing advance result."""
    runner = FormFlowRunner(env={"FORMFLOW_TRANSITIONS_DB": str(tmp_path / "t.db")})

    async def accept(_payload: SubmissionPayload) -> str:
        return "never"

    flow = runner.start(_definition(), accept)
    result = asyncio.run(drive(flow, {"satisfied": False}))

    assert result.moved is False
    assert [issue.field_id for issue in result.issues] == ["complaint"]
    assert flow.current_step.key == "one"
