"""Runtime environment loading helpers."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

DISABLE_DOTENV_ENV = "FORMFLOW_DISABLE_DOTENV"


def dotenv_disabled() -> bool:
    return os.getenv(DISABLE_DOTENV_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def load_runtime_env(*, filename: str = ".env") -> Path | None:
    """Load the nearest .env without overriding exported variables.

    Returns the loaded file, or None when disabled or nothing was found.
    """
    if dotenv_disabled():
        return None
    dotenv_path = find_dotenv(filename=filename, usecwd=True)
    if not dotenv_path or not load_dotenv(dotenv_path=dotenv_path, override=False):
        return None
    return Path(dotenv_path)
