"""In-process adapters for the dispatcher ports."""

from relaybot.adapters.console_transport import ConsoleTransport
from relaybot.adapters.media_cache import MediaInfoCache
from relaybot.adapters.prometheus_telemetry import PrometheusTelemetry
from relaybot.adapters.rate_oracle import InMemoryRateOracle
from relaybot.adapters.telemetry import InMemoryTelemetry

__all__ = ["ConsoleTransport", "InMemoryRateOracle", "InMemoryTelemetry", "MediaInfoCache", "PrometheusTelemetry"]
