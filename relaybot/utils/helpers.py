"""Utility functions for relaybot."""

import os
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the relaybot data directory.

    Respects RELAYBOT_HOME environment variable; falls back to ~/.relaybot.
    """
    relaybot_home = os.environ.get("RELAYBOT_HOME", "").strip()
    if relaybot_home:
        return ensure_dir(Path(relaybot_home))
    return ensure_dir(Path.home() / ".relaybot")


def get_archive_path() -> Path:
    """Get the inbound archive directory (~/.relaybot/archive)."""
    return ensure_dir(get_data_path() / "archive")


def expand_data_path(value: str) -> Path:
    """Expand ``~`` and resolve relative paths against the data directory."""
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else get_data_path() / candidate
