"""Local-directory submit operation and file uploader."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from uuid import uuid4

import orjson

from formflow.schemas.answer_models import FileUploadAnswer
from formflow.schemas.flow_models import SubmissionPayload


class DirectorySubmitter:
    """Submit operation writing each payload to ``submission-<id>.json``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir
        self.written: list[Path] = []

    async def __call__(self, payload: SubmissionPayload) -> str:
        submission_id = uuid4().hex
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / f"submission-{submission_id}.json"
        data = orjson.dumps(
            payload.model_dump(mode="json"),
            option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS,
        )
        await asyncio.to_thread(target.write_bytes, data)
        self.written.append(target)
        return submission_id


class DirectoryUploader:
    """Uploader copying files into ``<root>/uploads/<field_id>/``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    async def upload(self, answer: FileUploadAnswer, *, field_id: str) -> str:
        target_dir = self.root / "uploads" / field_id
        target = target_dir / f"{uuid4().hex[:8]}-{Path(answer.filename).name}"
        if answer.content is not None:
            await asyncio.to_thread(self._write, target, answer.content)
        elif answer.path is not None:
            await asyncio.to_thread(self._copy, Path(answer.path), target)
        else:
            raise ValueError(f"upload for {field_id} carries neither content nor path")
        return target.relative_to(self.root).as_posix()

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    @staticmethod
    def _copy(source: Path, target: Path) -> None:
        if not source.is_file():
            raise FileNotFoundError(f"Upload source not found: {source}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
