"""Application bootstrap: wire config into a ready-to-use dispatcher."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from relaybot.adapters.media_cache import MediaInfoCache
from relaybot.adapters.prometheus_telemetry import PrometheusConfig, PrometheusTelemetry
from relaybot.adapters.rate_oracle import InMemoryRateOracle
from relaybot.adapters.telemetry import InMemoryTelemetry
from relaybot.core.dispatcher import Dispatcher
from relaybot.core.registry import CommandRegistry
from relaybot.core.triggers import TriggerEngine
from relaybot.plugins.loader import PluginLoader
from relaybot.storage.inbound_archive import InboundArchive

if TYPE_CHECKING:
    from relaybot.config.schema import Config
    from relaybot.core.ports import RandomSource, TransportPort


@dataclass(slots=True)
class BotRuntime:
    """Everything :func:`build_runtime` wired together."""

    config: "Config"
    dispatcher: Dispatcher
    oracle: InMemoryRateOracle
    telemetry: "InMemoryTelemetry | PrometheusTelemetry"
    media_cache: MediaInfoCache
    archive: InboundArchive | None
    plugins: PluginLoader

    def close(self) -> None:
        if self.archive is not None:
            self.archive.close()


def build_runtime(
    config: "Config",
    transport: "TransportPort",
    *,
    rng: "RandomSource | None" = None,
    load_plugins: bool = True,
    include_entry_points: bool = True,
) -> BotRuntime:
    """Build the dispatcher and its in-process collaborators from ``config``."""
    bot = config.bot
    owner = bot.owner_jid
    registry = CommandRegistry(prefix=bot.prefix)

    oracle = InMemoryRateOracle(
        enabled=config.rate_limit.enabled,
        command_limit_per_minute=config.rate_limit.command_limit_per_minute,
        auto_response_limit_per_minute=config.rate_limit.auto_response_limit_per_minute,
        exempt_identities={owner} if owner else None,
    )
    telemetry = _build_telemetry(config)
    media_cache = MediaInfoCache(
        ttl_seconds=config.media_cache.ttl_seconds,
        max_entries=config.media_cache.max_entries,
    )
    archive = (
        InboundArchive(config.archive.resolved_db_path, retention_days=config.archive.retention_days)
        if config.archive.enabled
        else None
    )
    trigger_engine = TriggerEngine(
        primary_identity=config.primary_identity,
        triggers=[rule.to_trigger() for rule in config.triggers.rules],
        oracle=oracle,
        rng=rng or random.Random(),
        enabled=config.triggers.enabled,
    )

    dispatcher = Dispatcher(
        transport=transport,
        oracle=oracle,
        archive=archive,
        media_cache=media_cache,
        telemetry=telemetry,
        trigger_engine=trigger_engine,
        registry=registry,
        prefix=bot.prefix,
        owner_identity=owner,
        auto_read=bot.auto_read,
        auto_typing=bot.auto_typing,
        handler_timeout_seconds=bot.handler_timeout_seconds,
        denial_message=bot.denial_message,
        failure_message=bot.failure_message,
        require_grants=bot.require_grants,
    )

    # Cooldowns come from the live command table.
    oracle.set_cooldown_resolver(lambda name: _cooldown_of(dispatcher.registry, name))

    plugins = PluginLoader(dispatcher, bot.plugins, include_entry_points=include_entry_points)
    if load_plugins:
        plugins.load()

    if not owner:
        logger.warning("bot.ownerNumber is not set: owner-only commands and auto-responses are disabled")
    logger.info(f"Dispatcher ready (prefix={bot.prefix!r}, commands={len(dispatcher.registry)})")
    return BotRuntime(
        config=config,
        dispatcher=dispatcher,
        oracle=oracle,
        telemetry=telemetry,
        media_cache=media_cache,
        archive=archive,
        plugins=plugins,
    )


def _build_telemetry(config: "Config") -> "InMemoryTelemetry | PrometheusTelemetry":
    settings = config.telemetry
    if settings.backend != "prometheus":
        return InMemoryTelemetry()
    telemetry = PrometheusTelemetry(PrometheusConfig(port=settings.port, host=settings.host))
    if settings.serve:
        telemetry.start()
    return telemetry


def _cooldown_of(registry: CommandRegistry, name: str) -> float:
    descriptor = registry.lookup(name)
    return descriptor.cooldown if descriptor else 0.0
