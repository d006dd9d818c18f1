"""Flow definition file and field source tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from pydantic import ValidationError

from formflow.definitions import FileFieldSource, load_flow_definition, resolve_fields
from formflow.schemas.field_models import FieldDescriptor

FLOW_YAML = """
key: feedback
title: Product feedback
lead:
  key: contact
  fields:
    - id: email
      kind: text
fields:
  - id: liked
    kind: yes_no
    step: opinion
  - id: why
    kind: textarea
    step: opinion
    visible_when:
      - field: liked
        op: is_false
  - id: score
    kind: stars
""".strip()


def _write_flow(tmp_path: Path, content: str = FLOW_YAML) -> Path:
    flow_path = tmp_path / "flow.yaml"
    flow_path.write_text(content, encoding="utf-8")
    return flow_path


def test_load_flow_definition_derives_steps(tmp_path: Path) -> None:
    """YAML flow files should load into derived step definitions."""
    definition = load_flow_definition(_write_flow(tmp_path))

    assert definition.key == "feedback"
    assert definition.title == "Product feedback"
    assert [step.key for step in definition.steps] == ["contact", "opinion", "score"]
    assert definition.steps[0].lead is True
    assert definition.field("liked").kind == "boolean"
    assert definition.field("score").kind == "rating"


def test_invalid_flow_file_is_rejected(tmp_path: Path) -> None:
    """Unknown keys and missing files should fail loudly."""
    with pytest.raises(ValidationError):
        load_flow_definition(_write_flow(tmp_path, "key: x\nfields: []\nextra: 1\n"))
    with pytest.raises(FileNotFoundError):
        load_flow_definition(tmp_path / "absent.yaml")


def test_file_field_source_notifies_only_on_change(tmp_path: Path) -> None:
    """Refreshing an unchanged file should not notify listeners."""
    flow_path = _write_flow(tmp_path)
    source = FileFieldSource(flow_path)
    received: list[tuple[FieldDescriptor, ...]] = []
    unsubscribe = source.subscribe(lambda fields: received.append(tuple(fields)))

    assert source.refresh() is False
    flow_path.write_text(FLOW_YAML + "\n  - id: extra\n    kind: text\n", encoding="utf-8")
    assert source.refresh() is True
    assert [field.id for field in received[0]] == ["liked", "why", "score", "extra"]

    unsubscribe()
    flow_path.write_text(FLOW_YAML, encoding="utf-8")
    assert source.refresh() is True
    assert len(received) == 1


def test_resolve_fields_supports_async_sources() -> None:
    """Async field sources should be awaited."""

    class _AsyncSource:
        async def fetch(self) -> list[FieldDescriptor]:
            return [FieldDescriptor(id="a", kind="text")]

        def subscribe(self, listener):  # type: ignore[no-untyped-def]
            return lambda: None

    fields = asyncio.run(resolve_fields(_AsyncSource()))
    assert [field.id for field in fields] == ["a"]
