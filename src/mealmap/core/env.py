"""
`.env` loading and repo-relative paths.

A checkout may carry a `.env` with a staging endpoint or a louder log level, and
replay tracks are usually given as paths relative to the checkout. Both are
looked up from the working directory upwards, so the CLI behaves the same from
any subdirectory.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

_ROOT_MARKERS = (".env", ".git", "pyproject.toml")


@lru_cache
def get_project_root() -> Path:
    """Nearest ancestor of the working directory holding a `.env`, `.git` or `pyproject.toml`."""
    cwd = Path.cwd().resolve()
    for candidate in (cwd, *cwd.parents):
        if any((candidate / marker).exists() for marker in _ROOT_MARKERS):
            return candidate
    return cwd


def _env_file() -> Path:
    explicit = os.getenv("MEALMAP_ENV_FILE")
    if explicit:
        return Path(explicit).expanduser().resolve()
    return get_project_root() / ".env"


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the `.env` file once; variables already set in the process win."""
    env_path = _env_file()
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    p = Path(path).expanduser()
    return p if p.is_absolute() else (get_project_root() / p).resolve()
