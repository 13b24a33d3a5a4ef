from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import OWNER, USER
from prometheus_client import CollectorRegistry
from rich.console import Console

from relaybot.adapters.console_transport import ConsoleTransport
from relaybot.adapters.media_cache import MediaInfoCache
from relaybot.adapters.prometheus_telemetry import PrometheusTelemetry
from relaybot.adapters.rate_oracle import InMemoryRateOracle
from relaybot.adapters.telemetry import InMemoryTelemetry
from relaybot.core.models import MediaInfo, MessageType
from relaybot.core.stats import DispatchStats
from relaybot.core.triggers import AUTO_RESPONSE_ACTION


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ── Rate oracle ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_command_window_limit_and_expiry() -> None:
    clock = _Clock()
    oracle = InMemoryRateOracle(command_limit_per_minute=2, clock=clock)

    for _ in range(2):
        assert await oracle.is_rate_limited(USER, "ping") is False
        await oracle.record_usage(USER, "ping")
    assert await oracle.is_rate_limited(USER, "ping") is True
    assert await oracle.is_rate_limited(USER, "other") is False
    assert await oracle.is_rate_limited(OWNER, "ping") is False

    clock.now += 60
    assert await oracle.is_rate_limited(USER, "ping") is False


@pytest.mark.asyncio
async def test_auto_response_has_its_own_limit() -> None:
    oracle = InMemoryRateOracle(command_limit_per_minute=10, auto_response_limit_per_minute=1, clock=_Clock())

    await oracle.record_usage(USER, AUTO_RESPONSE_ACTION)

    assert await oracle.is_rate_limited(USER, AUTO_RESPONSE_ACTION) is True


@pytest.mark.asyncio
async def test_cooldown_from_resolver_including_long_cooldowns() -> None:
    clock = _Clock()
    oracle = InMemoryRateOracle(clock=clock, cooldown_resolver=lambda name: 120.0 if name == "slow" else 0.0)

    await oracle.record_usage(USER, "slow")
    clock.now += 90
    assert await oracle.is_rate_limited(USER, "slow") is True
    clock.now += 31
    assert await oracle.is_rate_limited(USER, "slow") is False


@pytest.mark.asyncio
async def test_rate_state_stays_bounded_across_many_identities() -> None:
    clock = _Clock()
    oracle = InMemoryRateOracle(clock=clock, cooldown_resolver=lambda name: 7200.0 if name == "daily" else 0.0)

    for i in range(1000):
        assert await oracle.is_rate_limited(f"1555{i:07d}@s.whatsapp.net", "ping") is False
    assert oracle._windows == {}

    for i in range(50):
        await oracle.record_usage(f"1555{i:07d}@s.whatsapp.net", "ping")
    await oracle.record_usage(USER, "daily")
    assert len(oracle._windows) == 51

    clock.now += 3600
    await oracle.record_usage(OWNER, "ping")

    # Only the fresh use and the one still inside its cooldown survive.
    assert list(oracle._windows) == [(OWNER, "ping")]
    assert set(oracle._last_used) == {(OWNER, "ping"), (USER, "daily")}
    assert await oracle.is_rate_limited(USER, "daily") is True


@pytest.mark.asyncio
async def test_broken_cooldown_resolver_means_no_cooldown() -> None:
    def broken(name: str) -> float:
        raise LookupError(name)

    oracle = InMemoryRateOracle(clock=_Clock(), cooldown_resolver=broken)
    await oracle.record_usage(USER, "ping")

    assert await oracle.is_rate_limited(USER, "ping") is False


@pytest.mark.asyncio
async def test_exempt_identities_and_disabled_oracle() -> None:
    clock = _Clock()
    oracle = InMemoryRateOracle(command_limit_per_minute=1, exempt_identities={OWNER}, clock=clock)
    await oracle.record_usage(OWNER, "ping")
    await oracle.record_usage("15550000001:3@s.whatsapp.net", "ping")
    assert await oracle.is_rate_limited(OWNER, "ping") is False

    disabled = InMemoryRateOracle(enabled=False, command_limit_per_minute=1, clock=clock)
    await disabled.record_usage(USER, "ping")
    await disabled.record_usage(USER, "ping")
    assert await disabled.is_rate_limited(USER, "ping") is False
    assert disabled.enabled is False


@pytest.mark.asyncio
async def test_grants_lifecycle() -> None:
    oracle = InMemoryRateOracle()

    assert oracle.add_grant(USER, "Weather") is True
    assert oracle.add_grant(USER, "weather") is False
    assert await oracle.has_grant(USER, "weather") is True
    assert await oracle.has_grant(OWNER, "weather") is False
    assert oracle.grants_for(USER) == ["weather"]
    assert oracle.all_grants() == {USER: ["weather"]}

    assert oracle.remove_grant(USER, "weather") is True
    assert oracle.remove_grant(USER, "weather") is False
    assert oracle.all_grants() == {}

    with pytest.raises(ValueError):
        oracle.add_grant("", "weather")


# ── Media cache ──────────────────────────────────────────────────────


def _info(sender: str = USER) -> MediaInfo:
    return MediaInfo(type=MessageType.IMAGE, sender=sender, timestamp=1)


def test_media_cache_expires_entries() -> None:
    clock = _Clock()
    cache = MediaInfoCache(ttl_seconds=10, clock=clock)
    cache.cache_media_info("m1", _info())

    assert cache.get_media_info("m1") == _info()
    clock.now += 10
    assert cache.get_media_info("m1") is None
    assert cache.get_media_info("unknown") is None


def test_media_cache_evicts_oldest_beyond_capacity() -> None:
    cache = MediaInfoCache(max_entries=2, clock=_Clock())
    cache.cache_media_info("m1", _info())
    cache.cache_media_info("m2", _info())
    cache.cache_media_info("m1", _info(OWNER))
    cache.cache_media_info("m3", _info())

    assert len(cache) == 2
    assert cache.evictions == 1
    assert cache.get_media_info("m2") is None
    assert cache.get_media_info("m1").sender == OWNER


# ── Telemetry, stats, console transport ──────────────────────────────


def test_telemetry_counts_by_name() -> None:
    telemetry = InMemoryTelemetry()
    telemetry.incr("command_failed", labels=(("detail", "ping"),))
    telemetry.incr("command_failed", 2)

    assert telemetry.get("command_failed") == 3
    assert telemetry.get("never") == 0
    assert telemetry.snapshot() == {"command_failed": 3}


def test_prometheus_telemetry_exports_labelled_counters() -> None:
    registry = CollectorRegistry()
    telemetry = PrometheusTelemetry(registry=registry)
    telemetry.incr("command_failed", labels=(("detail", "ping"),))
    telemetry.incr("command_failed", 2, labels=(("detail", "ping"),))
    telemetry.incr("event_drop_malformed")
    telemetry.incr("custom_event")

    assert registry.get_sample_value("relaybot_command_failed_total", {"detail": "ping"}) == 3
    assert registry.get_sample_value("relaybot_event_drop_malformed_total", {"detail": ""}) == 1
    assert telemetry.get("command_failed") == 3
    assert telemetry.get("custom_event") == 1
    assert telemetry.get("command_denied") == 0
    assert telemetry.snapshot()["custom_event"] == 1
    assert "relaybot_command_failed_total{detail=\"ping\"} 3.0" in telemetry.render()


def test_prometheus_telemetry_instances_do_not_collide() -> None:
    first = PrometheusTelemetry()
    second = PrometheusTelemetry()
    first.incr("command_succeeded")

    assert first.get("command_succeeded") == 1
    assert second.get("command_succeeded") == 0


def test_stats_increments_are_race_free_across_threads() -> None:
    stats = DispatchStats()

    with ThreadPoolExecutor(max_workers=8) as pool:
        for _ in range(1000):
            pool.submit(stats.incr, "processed")

    assert stats.processed == 1000
    with pytest.raises(KeyError):
        stats.incr("bogus")


@pytest.mark.asyncio
async def test_console_transport_records_and_prints() -> None:
    console = Console(record=True, width=120)
    transport = ConsoleTransport(console, show_presence=True)

    ack = await transport.send_message(USER, {"text": "[not markup] pong", "quoted": {"key": {}}})
    await transport.send_presence_update("composing", USER)
    await transport.mark_read([{"id": "ABC"}])

    output = console.export_text()
    assert transport.sent == [(USER, {"text": "[not markup] pong", "quoted": {"key": {}}})]
    assert ack["key"]["remoteJid"] == USER
    assert "[not markup] pong" in output
    assert "presence composing" in output
    assert "read ABC" in output
