"""Redaction of secrets and personal data in failure reasons and traces."""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"
# (pattern, keeps-prefix-group)
SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], bool]] = [
    (re.compile(r"\bsk-[A-Za-z0-9:_-]{16,}\b"), False),
    (re.compile(r"\b[sp]k-lf-[A-Za-z0-9:_-]{8,}\b"), False),
    (re.compile(r"(?i)\b(authorization\s*:\s*bearer\s+)[A-Za-z0-9._:-]+"), True),
    (re.compile(r"(?i)\b(api[-_ ]?key\s*[=:]\s*)[\"']?[A-Za-z0-9._:-]{8,}[\"']?"), True),
    (re.compile(r"(?i)\b((?:access_|refresh_)?token\s*[=:]\s*)[\"']?[A-Za-z0-9._:-]{8,}[\"']?"), True),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), False),
    (re.compile(r"\b(?:\d[ -]?){13,19}\b"), False),
]


def redact_text(value: str) -> str:
    """Redact secrets, e-mail addresses and card-like numbers from text."""
    redacted = value
    for pattern, keep_prefix in SENSITIVE_PATTERNS:
        replacement = r"\1" + REDACTED if keep_prefix else REDACTED
        redacted = pattern.sub(replacement, redacted)
    return redacted


def redact_mapping(value: Any) -> Any:
    """Recursively redact strings in nested dictionaries/lists."""
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {k: redact_mapping(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact_mapping(item) for item in value]
    return value
