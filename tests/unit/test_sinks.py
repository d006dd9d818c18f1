"""Directory submitter and uploader tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import orjson
import pytest

from formflow.schemas.answer_models import FileUploadAnswer
from formflow.schemas.flow_models import SubmissionAnswer, SubmissionPayload
from formflow.sinks import DirectorySubmitter, DirectoryUploader


def test_directory_submitter_writes_payload_json(tmp_path: Path) -> None:
    """Payloads should be written as sorted JSON named by submission id."""
    submitter = DirectorySubmitter(tmp_path / "out")
    payload = SubmissionPayload(
        flow_key="survey",
        flow_id="flow-1",
        attempt=1,
        answers={"name": SubmissionAnswer(field_id="name", kind="text", value="Ada")},
    )

    submission_id = asyncio.run(submitter(payload))

    target = tmp_path / "out" / f"submission-{submission_id}.json"
    assert submitter.written == [target]
    data = orjson.loads(target.read_bytes())
    assert data["answers"]["name"]["value"] == "Ada"
    assert data["flow_key"] == "survey"


def test_directory_uploader_stores_content_and_copies_paths(tmp_path: Path) -> None:
    """Uploads with bytes or a source path should land under uploads/."""
    uploader = DirectoryUploader(tmp_path)
    source = tmp_path / "agenda.txt"
    source.write_text("agenda", encoding="utf-8")

    from_bytes = asyncio.run(
        uploader.upload(FileUploadAnswer(filename="notes.txt", content=b"hi"), field_id="notes")
    )
    from_path = asyncio.run(
        uploader.upload(
            FileUploadAnswer(filename="agenda.txt", path=str(source)), field_id="agenda"
        )
    )

    assert from_bytes.startswith("uploads/notes/")
    assert (tmp_path / from_bytes).read_bytes() == b"hi"
    assert (tmp_path / from_path).read_text(encoding="utf-8") == "agenda"


def test_directory_uploader_requires_a_source(tmp_path: Path) -> None:
    """Uploads without content or path cannot be stored."""
    with pytest.raises(ValueError):
        asyncio.run(
            DirectoryUploader(tmp_path).upload(FileUploadAnswer(filename="x.bin"), field_id="x")
        )
