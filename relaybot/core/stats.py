"""Process-wide dispatch counters."""

from __future__ import annotations

import threading

COUNTER_NAMES = ("processed", "commands_executed", "errors", "media_messages", "messages_sent")


class DispatchStats:
    """Monotonic counters shared by concurrent dispatches.

    Increments take a lock so that dispatches running on worker threads do
    not lose updates.
    """

    __slots__ = ("_lock", "_counters")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, int] = dict.fromkeys(COUNTER_NAMES, 0)

    def incr(self, name: str, value: int = 1) -> None:
        if name not in self._counters:
            raise KeyError(f"unknown dispatch counter: {name}")
        with self._lock:
            self._counters[name] += int(value)

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    @property
    def processed(self) -> int:
        return self.get("processed")

    @property
    def commands_executed(self) -> int:
        return self.get("commands_executed")

    @property
    def errors(self) -> int:
        return self.get("errors")

    @property
    def media_messages(self) -> int:
        return self.get("media_messages")

    @property
    def messages_sent(self) -> int:
        return self.get("messages_sent")

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v}" for k, v in self.snapshot().items())
        return f"DispatchStats({fields})"
