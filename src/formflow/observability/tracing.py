"""Langfuse tracing of submission attempts with a no-op fallback."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Mapping, Protocol

from formflow.security.redaction import redact_mapping

LOGGER = logging.getLogger(__name__)

ATTEMPT_SPAN_NAME = "formflow-submission"


class TracerProtocol(Protocol):
    """What the submission coordinator reports per attempt."""

    def start_attempt(self, *, attempt_id: str, metadata: dict[str, Any]) -> None: ...

    def record_stage(
        self,
        *,
        attempt_id: str,
        stage: str,
        metadata: dict[str, Any],
        output_payload: Any | None = None,
    ) -> None: ...

    def finish_attempt(self, *, attempt_id: str, metadata: dict[str, Any]) -> None: ...

    def flush(self) -> None: ...


class NoOpTracer:
    """Tracer used when Langfuse is not configured."""

    def start_attempt(self, *, attempt_id: str, metadata: dict[str, Any]) -> None:
        return

    def record_stage(
        self,
        *,
        attempt_id: str,
        stage: str,
        metadata: dict[str, Any],
        output_payload: Any | None = None,
    ) -> None:
        return

    def finish_attempt(self, *, attempt_id: str, metadata: dict[str, Any]) -> None:
        return

    def flush(self) -> None:
        return


def langfuse_client_kwargs(env: Mapping[str, str]) -> dict[str, Any] | None:
    """Build Langfuse client arguments, or None when credentials are missing."""
    public_key = env.get("LANGFUSE_PUBLIC_KEY")
    secret_key = env.get("LANGFUSE_SECRET_KEY")
    if not public_key or not secret_key:
        return None
    kwargs: dict[str, Any] = {"public_key": public_key, "secret_key": secret_key}
    host = env.get("LANGFUSE_BASE_URL") or env.get("LANGFUSE_HOST")
    if host:
        kwargs["host"] = host.rstrip("/")
    return kwargs


class LangfuseTracer:
    """One Langfuse span per attempt; each stage is a closed child span.

    Tracing failures are logged and never reach the submission path.
    """

    def __init__(self, env: Mapping[str, str]) -> None:
        self._client: Any | None = None
        self._attempt_spans: dict[str, Any] = {}
        kwargs = langfuse_client_kwargs(env)
        if kwargs is None:
            return

        try:
            from langfuse import Langfuse
        except ImportError:
            LOGGER.debug("langfuse package not installed; tracing disabled.")
            return

        try:
            self._client = Langfuse(**kwargs)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to initialize Langfuse client: %s", exc)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Langfuse %s failed: %s", action, exc)

    def start_attempt(self, *, attempt_id: str, metadata: dict[str, Any]) -> None:
        if self._client is None:
            return
        with self._guard("start_attempt"):
            stale = self._attempt_spans.pop(attempt_id, None)
            if stale is not None:
                stale.end()
            self._attempt_spans[attempt_id] = self._client.start_span(
                trace_context={"trace_id": _trace_id(attempt_id)},
                name=ATTEMPT_SPAN_NAME,
                metadata=redact_mapping(metadata),
            )

    def record_stage(
        self,
        *,
        attempt_id: str,
        stage: str,
        metadata: dict[str, Any],
        output_payload: Any | None = None,
    ) -> None:
        if self._client is None:
            return
        context = {"trace_id": _trace_id(attempt_id)}
        parent_id = getattr(self._attempt_spans.get(attempt_id), "id", None)
        if isinstance(parent_id, str):
            context["parent_span_id"] = parent_id
        output = None if output_payload is None else redact_mapping(output_payload)
        with self._guard("record_stage"):
            with self._client.start_as_current_observation(
                trace_context=context,
                name=f"stage:{stage}",
                as_type="span",
                output=output,
                metadata=redact_mapping(metadata),
            ):
                pass

    def finish_attempt(self, *, attempt_id: str, metadata: dict[str, Any]) -> None:
        span = self._attempt_spans.pop(attempt_id, None)
        if self._client is None or span is None:
            return
        with self._guard("finish_attempt"):
            span.update(metadata=redact_mapping(metadata))
            span.end()

    def flush(self) -> None:
        if self._client is None:
            return
        with self._guard("flush"):
            self._client.flush()


def create_tracer(env: Mapping[str, str]) -> TracerProtocol:
    """Langfuse tracer when credentials are present, otherwise a no-op."""
    tracer = LangfuseTracer(env)
    return tracer if tracer.enabled else NoOpTracer()


def _trace_id(attempt_id: str) -> str:
    # Langfuse expects 32 lowercase hex chars
    return hashlib.sha256(attempt_id.encode("utf-8")).hexdigest()[:32]
