"""Flow definition files and field-source collaborators."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import Field

from formflow.composition import SchemaComposer
from formflow.schemas.base import StrictSchemaModel
from formflow.schemas.field_models import FieldDescriptor, VisibilityRule
from formflow.steps import FlowDefinition, LeadStep

FieldsListener = Callable[[Sequence[FieldDescriptor]], None]


class LeadStepFile(StrictSchemaModel):
    """Lead step section of a flow file."""

    key: str = Field(min_length=1)
    title: str | None = None
    precondition: VisibilityRule | None = None
    fields: list[FieldDescriptor] = Field(min_length=1)

    def to_lead_step(self) -> LeadStep:
        return LeadStep(
            key=self.key,
            title=self.title,
            fields=tuple(self.fields),
            precondition=self.precondition,
        )


class FlowFile(StrictSchemaModel):
    """On-disk flow definition."""

    key: str = Field(min_length=1)
    title: str | None = None
    lead: LeadStepFile | None = None
    fields: list[FieldDescriptor] = Field(default_factory=list)

    def to_definition(self, composer: SchemaComposer | None = None) -> FlowDefinition:
        return FlowDefinition.build(
            self.key,
            self.fields,
            lead=self.lead.to_lead_step() if self.lead else None,
            title=self.title,
            composer=composer,
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Flow file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Flow file must deserialize to a mapping")
    return data


def load_flow_file(path: Path) -> FlowFile:
    """Parse and validate a YAML flow file."""
    return FlowFile.model_validate(_load_yaml(path))


def load_flow_definition(
    path: Path, *, composer: SchemaComposer | None = None
) -> FlowDefinition:
    """Load a flow file and derive its steps."""
    return load_flow_file(path).to_definition(composer)


class FieldSource(Protocol):
    """Supplies the current ordered field list and notifies on change."""

    def fetch(self) -> Sequence[FieldDescriptor] | Awaitable[Sequence[FieldDescriptor]]:
        """Return the current field list snapshot."""

    def subscribe(self, listener: FieldsListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""


async def resolve_fields(source: FieldSource) -> tuple[FieldDescriptor, ...]:
    """Await a source snapshot when the source is asynchronous."""
    fields = source.fetch()
    if inspect.isawaitable(fields):
        fields = await fields
    return tuple(fields)


class FileFieldSource:
    """Field source backed by a flow file; ``refresh`` re-reads and notifies."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._listeners: list[FieldsListener] = []
        self._fields: tuple[FieldDescriptor, ...] = tuple(load_flow_file(path).fields)

    def fetch(self) -> Sequence[FieldDescriptor]:
        return self._fields

    def subscribe(self, listener: FieldsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def refresh(self) -> bool:
        """Reload the file; notify listeners only when the fields changed."""
        fields = tuple(load_flow_file(self.path).fields)
        if fields == self._fields:
            return False
        self._fields = fields
        for listener in list(self._listeners):
            listener(fields)
        return True
