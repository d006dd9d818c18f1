"""SQLite transition log tests."""

from __future__ import annotations

from pathlib import Path

from formflow.observability.transition_store import TransitionStore


def test_transitions_are_listed_per_flow_in_order(tmp_path: Path) -> None:
    """Records should come back in insertion order, filtered by flow id."""
    store = TransitionStore(tmp_path / "nested" / "transitions.db")
    store.record_transition(
        flow_id="a", generation=0, from_state="idle", to_state="validating", reason="start"
    )
    store.record_transition(
        flow_id="b", generation=0, from_state="idle", to_state="validating", reason="other"
    )
    store.record_transition(
        flow_id="a", generation=1, from_state="validating", to_state="failed", reason="bad"
    )

    records = store.list_transitions("a")
    assert [(record.from_state, record.to_state) for record in records] == [
        ("idle", "validating"),
        ("validating", "failed"),
    ]
    assert records[1].generation == 1
    assert records[1].reason == "bad"
    assert records[0].timestamp
    assert store.list_transitions("missing") == []


def test_store_reopens_existing_database(tmp_path: Path) -> None:
    """Re-creating a store over the same file keeps earlier records."""
    db_path = tmp_path / "transitions.db"
    TransitionStore(db_path).record_transition(
        flow_id="a", generation=0, from_state="idle", to_state="validating", reason="start"
    )
    assert len(TransitionStore(db_path).list_transitions("a")) == 1
