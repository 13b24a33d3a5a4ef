"""Command plugin loading."""

from relaybot.plugins.loader import (
    ENTRY_POINT_GROUP,
    Plugin,
    PluginLoader,
    PluginLoadError,
    PluginSource,
    discover_entry_points,
)

__all__ = [
    "ENTRY_POINT_GROUP",
    "Plugin",
    "PluginLoadError",
    "PluginLoader",
    "PluginSource",
    "discover_entry_points",
]
