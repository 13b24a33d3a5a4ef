"""Command registry with whole-table swaps."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from types import MappingProxyType

from loguru import logger

from relaybot.core.models import CommandDescriptor, CommandHandler, CommandOptions


class CommandRegistry:
    """Name -> :class:`CommandDescriptor` table.

    Every mutation builds a new mapping and publishes it with a single
    assignment, so a dispatch that already fetched the table keeps reading a
    consistent snapshot. Writers serialize on ``_write_lock``.
    """

    def __init__(self, *, prefix: str = ".") -> None:
        self._prefix = prefix
        self._commands: Mapping[str, CommandDescriptor] = MappingProxyType({})
        self._write_lock = threading.Lock()

    @property
    def prefix(self) -> str:
        return self._prefix

    def register(
        self,
        name: str,
        handler: CommandHandler,
        options: CommandOptions | None = None,
    ) -> CommandDescriptor:
        """Register ``handler`` under ``name``, replacing any previous entry."""
        key = name.strip().lower()
        opts = options or CommandOptions()
        descriptor = CommandDescriptor(
            name=key,
            handler=handler,
            description=opts.description or "No description",
            category=opts.category or "general",
            usage=opts.usage or f"{self._prefix}{key}",
            owner_only=opts.owner_only,
            group_only=opts.group_only,
            private_only=opts.private_only,
            cooldown=max(0.0, float(opts.cooldown or 0.0)),
        )
        with self._write_lock:
            table = dict(self._commands)
            table[key] = descriptor
            self._commands = MappingProxyType(table)
        logger.debug(f"Registered command: {key}")
        return descriptor

    def lookup(self, name: str) -> CommandDescriptor | None:
        return self._commands.get(name.strip().lower())

    def list(self, category: str | None = None) -> list[CommandDescriptor]:
        """Descriptors in registration order, optionally filtered by category."""
        commands = list(self._commands.values())
        if category:
            return [cmd for cmd in commands if cmd.category == category]
        return commands

    def names(self) -> list[str]:
        return list(self._commands)

    def clear(self) -> None:
        with self._write_lock:
            self._commands = MappingProxyType({})
        logger.info("Command registry cleared")

    def update(self, other: "CommandRegistry") -> None:
        """Copy every descriptor of ``other`` into this table in one swap."""
        with self._write_lock:
            table = dict(self._commands)
            table.update(other._commands)
            self._commands = MappingProxyType(table)

    def reload(self, populate: Callable[["CommandRegistry"], None]) -> int:
        """Rebuild the table through ``populate`` and swap it in atomically.

        ``populate`` receives an empty staging registry. If it raises, the
        current table is kept and the error propagates.
        """
        staging = CommandRegistry(prefix=self._prefix)
        populate(staging)
        with self._write_lock:
            self._commands = staging._commands
        logger.info(f"Command registry reloaded ({len(staging)} commands)")
        return len(staging)

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._commands

    def __repr__(self) -> str:
        return f"CommandRegistry({', '.join(self._commands)})"
