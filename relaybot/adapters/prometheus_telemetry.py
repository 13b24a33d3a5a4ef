"""Prometheus metrics backend for dispatch telemetry.

Counters are exported as ``relaybot_<name>_total`` with a ``detail`` label
(command name or message type, empty when not applicable)::

    telemetry = PrometheusTelemetry(PrometheusConfig(port=9464))
    telemetry.start()
    telemetry.incr("command_failed", labels=(("detail", "ping"),))

    # Metrics available at http://127.0.0.1:9464/metrics
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from loguru import logger
from prometheus_client import CollectorRegistry, Counter, generate_latest, start_http_server

METRIC_PREFIX = "relaybot"

# Counters emitted by the dispatcher, registered up front so they show as 0.
DISPATCH_COUNTERS: dict[str, str] = {
    "event_drop_malformed": "Inbound events dropped as malformed or unrecognized",
    "event_drop_empty": "Inbound events dropped for carrying no text",
    "middleware_blocked": "Envelopes vetoed by middleware",
    "command_unknown": "Commands with no registered handler",
    "command_denied": "Commands refused by the permission check",
    "command_rate_limited": "Commands dropped by rate limiting or cooldown",
    "command_succeeded": "Commands whose handler completed",
    "command_failed": "Commands whose handler faulted or timed out",
    "auto_response_sent": "Auto-responses sent by the trigger engine",
    "archive_failed": "Inbound events the archive failed to record",
}


@dataclass
class PrometheusConfig:
    """Configuration for the Prometheus telemetry backend."""

    port: int = 9464
    host: str = "127.0.0.1"


class PrometheusTelemetry:
    """Prometheus-backed telemetry with an optional ``/metrics`` endpoint.

    Each instance owns its :class:`CollectorRegistry`, so several runtimes
    (or tests) in one process never collide on metric names.
    """

    def __init__(self, config: PrometheusConfig | None = None, registry: CollectorRegistry | None = None) -> None:
        self._config = config or PrometheusConfig()
        self._registry = registry or CollectorRegistry()
        self._counters: dict[str, Counter] = {}
        self._lock = threading.Lock()
        self._started = False
        for name, description in DISPATCH_COUNTERS.items():
            self._counter(name, description)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def start(self) -> None:
        """Start the HTTP exporter once; failures are logged, not raised."""
        if self._started:
            return
        try:
            start_http_server(self._config.port, addr=self._config.host, registry=self._registry)
        except OSError as e:
            logger.error(f"Failed to start Prometheus server: {e}")
            return
        self._started = True
        logger.info(f"Prometheus metrics server started on http://{self._config.host}:{self._config.port}/metrics")

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        detail = dict(labels).get("detail", "")
        self._counter(name).labels(detail=detail).inc(value)

    def get(self, name: str) -> int:
        total = 0.0
        for metric in self._registry.collect():
            if metric.name != f"{METRIC_PREFIX}_{name}":
                continue
            for sample in metric.samples:
                if sample.name.endswith("_total"):
                    total += sample.value
        return int(total)

    def snapshot(self) -> dict[str, int]:
        return {name: self.get(name) for name in sorted(self._counters)}

    def render(self) -> str:
        """Current metrics in the Prometheus text exposition format."""
        return generate_latest(self._registry).decode("utf-8")

    def _counter(self, name: str, description: str | None = None) -> Counter:
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(
                    f"{METRIC_PREFIX}_{name}",
                    description or f"Counter: {name}",
                    labelnames=["detail"],
                    registry=self._registry,
                )
                self._counters[name] = counter
            return counter
