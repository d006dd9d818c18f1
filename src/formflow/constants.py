"""Package-wide constants."""

from __future__ import annotations

PACKAGE_VERSION = "0.3.0"
SCHEMA_VERSION = "1.0.0"
DEFAULT_TRANSITIONS_DB = ".sqlite/formflow.db"
