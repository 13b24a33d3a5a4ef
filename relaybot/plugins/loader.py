"""Plugin discovery and hot reload for command plugins.

A plugin is any object with a ``name`` and ``register(registry, context)``;
a bare ``register(registry, context)`` function works too. Plugins come from
``"package.module:attribute"`` specs (attribute defaults to ``plugin``) or
from the ``relaybot.plugins`` entry-point group::

    [project.entry-points."relaybot.plugins"]
    tools = "relaybot_tools.plugin:plugin"

A plugin may also expose ``middleware``, an iterable of middleware callables;
those are installed once per plugin name and survive reloads.
"""

from __future__ import annotations

import importlib
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, runtime_checkable

from loguru import logger

from relaybot.core.registry import CommandRegistry

if TYPE_CHECKING:
    from relaybot.core.context import BotContext
    from relaybot.core.dispatcher import Dispatcher

ENTRY_POINT_GROUP = "relaybot.plugins"
DEFAULT_ATTRIBUTE = "plugin"


class PluginLoadError(RuntimeError):
    """A plugin failed to import or register while loading strictly."""


@runtime_checkable
class Plugin(Protocol):
    """Object-style plugin."""

    name: str

    def register(self, registry: CommandRegistry, context: "BotContext") -> None:
        """Register commands into ``registry``."""


PluginTarget: TypeAlias = Plugin | Callable[[CommandRegistry, "BotContext"], None]


@dataclass(slots=True)
class PluginSource:
    """Where one plugin comes from."""

    name: str
    module: str
    attribute: str = DEFAULT_ATTRIBUTE
    origin: str = "spec"

    @classmethod
    def parse(cls, spec: str) -> "PluginSource":
        """Parse ``"package.module:attribute"`` (attribute optional)."""
        text = spec.strip()
        if not text:
            raise ValueError("plugin spec must not be empty")
        module, _, attribute = text.partition(":")
        module = module.strip()
        if not module:
            raise ValueError(f"plugin spec {spec!r} has no module")
        return cls(name=text, module=module, attribute=attribute.strip() or DEFAULT_ATTRIBUTE)


def discover_entry_points(group: str = ENTRY_POINT_GROUP) -> list[PluginSource]:
    """List plugin sources advertised through package metadata."""
    sources: list[PluginSource] = []
    for ep in entry_points(group=group):
        module, _, attribute = ep.value.partition(":")
        sources.append(
            PluginSource(
                name=ep.name,
                module=module.strip(),
                attribute=attribute.strip() or DEFAULT_ATTRIBUTE,
                origin="entry_point",
            )
        )
    return sources


class PluginLoader:
    """Load plugins into a dispatcher's registry, all-or-keep on reload.

    Each load registers every plugin into a fresh staging registry and swaps
    it in with :meth:`CommandRegistry.reload`. A failing plugin is logged and
    skipped; with ``strict=True`` it aborts the load and the previous command
    table stays active.
    """

    def __init__(
        self,
        dispatcher: "Dispatcher",
        specs: Iterable[str] = (),
        *,
        include_entry_points: bool = True,
        builtins: Iterable[PluginTarget] = (),
        strict: bool = False,
    ) -> None:
        self._dispatcher = dispatcher
        self._sources = [PluginSource.parse(spec) for spec in specs]
        self._include_entry_points = include_entry_points
        self._builtins = tuple(builtins)
        self._strict = strict
        self._loaded: list[str] = []
        self._middleware_installed: set[str] = set()

    @property
    def loaded(self) -> list[str]:
        return list(self._loaded)

    def sources(self) -> list[PluginSource]:
        found = list(self._sources)
        if self._include_entry_points:
            found.extend(discover_entry_points())
        return found

    def load(self) -> int:
        """Register all plugins; returns the number of commands now active."""
        return self.reload(reimport=False)

    def reload(self, *, reimport: bool = True) -> int:
        """Rebuild the command table from scratch.

        With ``reimport`` the plugin modules are re-executed first so edited
        code takes effect without a restart.
        """
        resolved: list[tuple[str, PluginTarget]] = [(_target_name(p), p) for p in self._builtins]
        for source in self.sources():
            try:
                resolved.append((source.name, self._resolve(source, reimport=reimport)))
            except Exception as e:
                self._fail(source.name, "import", e)

        loaded: list[tuple[str, PluginTarget]] = []

        def populate(staging: CommandRegistry) -> None:
            for name, target in resolved:
                # A plugin that fails halfway contributes nothing.
                scratch = CommandRegistry(prefix=staging.prefix)
                try:
                    _register(target, scratch, self._dispatcher.context)
                except Exception as e:
                    self._fail(name, "register", e)
                    continue
                staging.update(scratch)
                loaded.append((name, target))

        count = self._dispatcher.reload_commands(populate)
        # Only a table that was actually swapped in brings its middleware.
        for name, target in loaded:
            self._install_middleware(name, target)
        self._loaded = [name for name, _ in loaded]
        logger.info(f"Loaded {len(loaded)} plugin(s), {count} command(s)")
        return count

    def _resolve(self, source: PluginSource, *, reimport: bool) -> PluginTarget:
        module = sys.modules.get(source.module)
        if module is not None and reimport:
            module = importlib.reload(module)
        elif module is None:
            module = importlib.import_module(source.module)
        target = getattr(module, source.attribute, None)
        if target is None:
            raise AttributeError(f"module {source.module!r} has no attribute {source.attribute!r}")
        return target

    def _install_middleware(self, name: str, target: Any) -> None:
        if name in self._middleware_installed:
            return
        for middleware in getattr(target, "middleware", None) or ():
            self._dispatcher.register_middleware(middleware)
        self._middleware_installed.add(name)

    def _fail(self, name: str, stage: str, error: Exception) -> None:
        if self._strict:
            raise PluginLoadError(f"plugin {name} failed to {stage}: {error}") from error
        logger.opt(exception=error).error(f"Plugin {name} failed to {stage}, skipping: {error}")


def _register(target: Any, registry: CommandRegistry, context: "BotContext") -> None:
    if isinstance(target, Plugin):
        target.register(registry, context)
    elif callable(target):
        target(registry, context)
    else:
        raise TypeError(f"plugin must be callable or expose register(), got {type(target).__name__}")


def _target_name(target: Any) -> str:
    return str(getattr(target, "name", None) or getattr(target, "__name__", type(target).__name__))
