"""Configuration loading utilities."""

import json
import os
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.config.defaults import apply_missing_defaults
from relaybot.config.schema import Config

CONFIG_VERSION = 1

# Flat keys accepted from older env-style config files, moved under ``bot``.
_LEGACY_BOT_KEYS = {
    "PREFIX": "prefix",
    "OWNER_NUMBER": "ownerNumber",
    "AUTO_READ": "autoRead",
    "AUTO_TYPING": "autoTyping",
    "prefix": "prefix",
    "ownerNumber": "ownerNumber",
    "autoRead": "autoRead",
    "autoTyping": "autoTyping",
}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    from relaybot.utils.helpers import get_data_path

    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                raw = json.load(f)

            migrated_raw, changed = _migrate_config_with_change(raw)
            validated = Config.model_validate(convert_keys(migrated_raw))
            if changed:
                _backup_config(path)
                _atomic_write_config(path, validated)
            return validated
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}; using default configuration")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    _atomic_write_config(path, config)


def _migrate_config_with_change(data: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Bring a raw camelCase payload up to the current layout.

    Returns:
        (migrated_data, changed)
    """
    if not isinstance(data, dict):
        raise ValueError("Config root must be a JSON object")

    original = json.dumps(data, sort_keys=True, separators=(",", ":"))
    data = json.loads(original)

    bot = data.get("bot")
    if not isinstance(bot, dict):
        bot = {}
        data["bot"] = bot
    for legacy, target in _LEGACY_BOT_KEYS.items():
        if legacy in data:
            value = data.pop(legacy)
            bot.setdefault(target, value)

    snake = convert_keys(data)
    apply_missing_defaults(snake)
    snake["config_version"] = CONFIG_VERSION

    migrated = convert_to_camel(snake)
    changed = original != json.dumps(migrated, sort_keys=True, separators=(",", ":"))
    return migrated, changed


def _backup_config(path: Path) -> None:
    """Create timestamped backup of config before migration rewrite."""
    if not path.exists():
        return
    timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    backup = path.with_name(f"{path.stem}.backup.{timestamp}{path.suffix}")
    shutil.copy2(path, backup)
    try:
        backup.chmod(0o600)
    except OSError:
        pass


def _atomic_write_config(path: Path, config: Config) -> None:
    """Write camelCase JSON through a temp file, owner-readable only."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump())
    tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    try:
        tmp_path.chmod(0o600)
    except OSError:
        pass
    os.replace(tmp_path, path)


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    out: list[str] = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0 and not name[i - 1].isupper():
            out.append("_")
        out.append(char.lower())
    return "".join(out)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
