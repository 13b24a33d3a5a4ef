"""Simple structured telemetry sink for dispatch counters."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from loguru import logger


@dataclass(slots=True)
class InMemoryTelemetry:
    """In-memory counter sink with structured debug logging."""

    counters: Counter[str] = field(default_factory=Counter)

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        self.counters[name] += int(value)
        if labels:
            labels_text = ",".join(f"{k}={v}" for k, v in labels)
            logger.debug("telemetry {} += {} ({})", name, value, labels_text)
        else:
            logger.debug("telemetry {} += {}", name, value)

    def get(self, name: str) -> int:
        return int(self.counters[name])

    def snapshot(self) -> dict[str, int]:
        return {name: int(value) for name, value in sorted(self.counters.items())}
