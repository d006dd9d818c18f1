"""SQLite log of submission status transitions."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import NamedTuple, Protocol

_SCHEMA = """
CREATE TABLE IF NOT EXISTS submission_transitions (
    flow_id TEXT NOT NULL,
    generation INTEGER NOT NULL,
    from_state TEXT NOT NULL,
    to_state TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    reason TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_submission_transitions_flow
    ON submission_transitions (flow_id);
"""


class TransitionRecord(NamedTuple):
    flow_id: str
    generation: int
    from_state: str
    to_state: str
    timestamp: str
    reason: str


class TransitionRecorder(Protocol):
    """Sink for submission status transitions."""

    def record_transition(
        self,
        *,
        flow_id: str,
        generation: int,
        from_state: str,
        to_state: str,
        reason: str,
    ) -> None: ...


class TransitionStore:
    """Append-only transition log keyed by flow instance id."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            yield conn

    def record_transition(
        self,
        *,
        flow_id: str,
        generation: int,
        from_state: str,
        to_state: str,
        reason: str,
    ) -> None:
        record = TransitionRecord(
            flow_id=flow_id,
            generation=generation,
            from_state=from_state,
            to_state=to_state,
            timestamp=datetime.now(UTC).isoformat(),
            reason=reason,
        )
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO submission_transitions VALUES (?, ?, ?, ?, ?, ?)", record
            )

    def list_transitions(self, flow_id: str) -> list[TransitionRecord]:
        """Transitions of one flow instance, oldest first."""
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM submission_transitions WHERE flow_id = ? ORDER BY rowid",
                (flow_id,),
            )
            return [TransitionRecord(*row) for row in cursor.fetchall()]
