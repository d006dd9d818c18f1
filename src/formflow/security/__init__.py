"""Security helpers."""

from formflow.security.redaction import redact_mapping, redact_text

__all__ = ["redact_mapping", "redact_text"]
