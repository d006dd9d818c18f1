"""Pydantic models for central YAML configuration."""

from __future__ import annotations

import logging

from pydantic import Field, field_validator

from formflow.constants import DEFAULT_TRANSITIONS_DB, SCHEMA_VERSION
from formflow.schemas.base import StrictSchemaModel


class SubmissionConfig(StrictSchemaModel):
    """Submission coordinator controls."""

    timeout_seconds: float | None = Field(default=30.0, gt=0)
    max_concurrent_transforms: int = Field(default=8, ge=1, le=64)


class TransitionsConfig(StrictSchemaModel):
    """Submission transition log settings."""

    enabled: bool = True
    db_path: str = Field(default=DEFAULT_TRANSITIONS_DB, min_length=1)


class LoggingConfig(StrictSchemaModel):
    """Log level for the CLI handler."""

    level: str = "WARNING"

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        normalized = str(value).strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level: {value}")
        return normalized


class AppConfig(StrictSchemaModel):
    """Central application configuration."""

    schema_version: str = Field(default=SCHEMA_VERSION, min_length=1)
    submission: SubmissionConfig = Field(default_factory=SubmissionConfig)
    transitions: TransitionsConfig = Field(default_factory=TransitionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
