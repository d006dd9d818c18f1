"""Facade wiring configuration, observability and the engine together."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from formflow.composition import SchemaComposer
from formflow.config import load_app_config
from formflow.errors import FieldNotApplicableError
from formflow.flow.machine import FormFlow
from formflow.observability import TransitionStore, create_tracer
from formflow.schemas.flow_models import AdvanceResult
from formflow.steps import FlowDefinition
from formflow.submission import SubmissionCoordinator, SubmitOperation
from formflow.transformers import FileUploader, TransformerRegistry

LOGGER = logging.getLogger(__name__)


class FormFlowRunner:
    """Builds configured flow instances and drives them from prepared answers."""

    def __init__(
        self,
        *,
        config_path: Path | None = None,
        env: dict[str, str] | None = None,
        cli_overrides: Mapping[str, Any] | None = None,
    ) -> None:
        self.env = dict(os.environ) if env is None else env
        self.config = load_app_config(config_path, env=self.env, cli_overrides=cli_overrides)
        self.tracer = create_tracer(self.env)
        self.transition_store = (
            TransitionStore(Path(self.config.transitions.db_path))
            if self.config.transitions.enabled
            else None
        )

    def start(
        self,
        definition: FlowDefinition,
        submit_operation: SubmitOperation,
        *,
        uploader: FileUploader | None = None,
        registry: TransformerRegistry | None = None,
        composer: SchemaComposer | None = None,
        flow_id: str | None = None,
    ) -> FormFlow:
        """Create a flow instance with a coordinator built from config."""
        coordinator = SubmissionCoordinator(
            submit_operation,
            registry=registry,
            composer=composer,
            uploader=uploader,
            timeout_seconds=self.config.submission.timeout_seconds,
            max_concurrent_transforms=self.config.submission.max_concurrent_transforms,
            tracer=self.tracer,
            transition_recorder=self.transition_store,
        )
        return FormFlow(definition, coordinator, flow_id=flow_id)


async def drive(flow: FormFlow, answers: Mapping[str, Any]) -> AdvanceResult:
    """Fill each step from ``answers`` and advance until the flow stops.

    Stops on validation issues or once a submission attempt has finished.
    """
    while True:
        for descriptor in flow.definition.step_fields(flow.current_step, flow.answers):
            if descriptor.id not in answers:
                continue
            try:
                flow.set_answer(descriptor.id, answers[descriptor.id])
            except FieldNotApplicableError:
                LOGGER.debug("Skipping %s; hidden by an earlier answer", descriptor.id)
        result = await flow.advance()
        if not result.moved:
            return result
