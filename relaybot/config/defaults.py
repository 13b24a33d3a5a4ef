"""Centralized opinionated defaults for generated config files."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

DEFAULT_PREFIX = "."

DEFAULT_BOT: dict[str, Any] = {
    "prefix": DEFAULT_PREFIX,
    "owner_number": "",
    "auto_read": False,
    "auto_typing": False,
    "handler_timeout_seconds": 30.0,
    "denial_message": "❌ You don't have permission to use this command.",
    "failure_message": "⚠️ An error occurred while processing your request.",
    "require_grants": False,
    "plugins": [],
}

DEFAULT_RATE_LIMIT: dict[str, Any] = {
    "enabled": True,
    "command_limit_per_minute": 10,
    "auto_response_limit_per_minute": 3,
}

DEFAULT_ARCHIVE: dict[str, Any] = {
    "enabled": True,
    "db_path": "archive/inbound.db",
    "retention_days": 30,
}

DEFAULT_MEDIA_CACHE: dict[str, Any] = {
    "ttl_seconds": 3600,
    "max_entries": 5000,
}

DEFAULT_TELEMETRY: dict[str, Any] = {
    "backend": "memory",
    "serve": False,
    "host": "127.0.0.1",
    "port": 9464,
}

# Personal-assistant greetings: (phrase, chance to answer, candidate replies).
DEFAULT_TRIGGER_RULES: list[dict[str, Any]] = [
    {
        "phrase": "help",
        "probability": 0.8,
        "responses": [
            "👋 Hello! I'm your personal assistant. How can I help you today?",
            "🤖 I'm here to assist you! What do you need?",
            "💡 How may I assist you today?",
        ],
    },
    {"phrase": "hello", "probability": 0.7, "responses": ["👋 Hello!", "🤖 Hi there!", "😊 Hey!"]},
    {"phrase": "hi", "probability": 0.7, "responses": ["👋 Hi!", "🤖 Hello!", "😊 Hey there!"]},
    {"phrase": "hey", "probability": 0.7, "responses": ["👋 Hey!", "🤖 Hi!", "😊 Hello!"]},
    {
        "phrase": "good morning",
        "probability": 0.9,
        "responses": ["🌅 Good morning!", "☀️ Morning!", "🌞 Good morning to you too!"],
    },
    {
        "phrase": "good afternoon",
        "probability": 0.9,
        "responses": ["🌞 Good afternoon!", "😊 Afternoon!", "🌤️ Good afternoon to you too!"],
    },
    {
        "phrase": "good evening",
        "probability": 0.9,
        "responses": ["🌅 Good evening!", "🌙 Evening!", "🌆 Good evening to you too!"],
    },
    {"phrase": "thanks", "probability": 0.6, "responses": ["😊 You're welcome!", "🤖 Happy to help!", "👍 Anytime!"]},
    {
        "phrase": "thank you",
        "probability": 0.6,
        "responses": ["😊 You're very welcome!", "🤖 My pleasure!", "👍 Always here to help!"],
    },
]


def default_trigger_rules() -> list[dict[str, Any]]:
    """Return a deep-copied triggers.rules payload."""
    return deepcopy(DEFAULT_TRIGGER_RULES)


def apply_missing_defaults(snake_config: dict[str, Any]) -> None:
    """Inject missing config defaults without overriding existing user values."""
    if not isinstance(snake_config, dict):
        return

    for section, defaults in (
        ("bot", DEFAULT_BOT),
        ("rate_limit", DEFAULT_RATE_LIMIT),
        ("archive", DEFAULT_ARCHIVE),
        ("media_cache", DEFAULT_MEDIA_CACHE),
        ("telemetry", DEFAULT_TELEMETRY),
    ):
        current = snake_config.setdefault(section, {})
        if not isinstance(current, dict):
            continue
        for k, v in defaults.items():
            current.setdefault(k, deepcopy(v))

    triggers = snake_config.setdefault("triggers", {})
    if isinstance(triggers, dict):
        triggers.setdefault("enabled", True)
        triggers.setdefault("primary_identity", "")
        if not isinstance(triggers.get("rules"), list):
            triggers["rules"] = default_trigger_rules()
