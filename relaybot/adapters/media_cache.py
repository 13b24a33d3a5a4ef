"""TTL cache for media annotations produced by the dispatcher."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable

from relaybot.core.models import MediaInfo

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_MAX_ENTRIES = 5000
CLEANUP_INTERVAL_SECONDS = 30.0


class MediaInfoCache:
    """Message id -> :class:`MediaInfo`, bounded by age and size."""

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = max(1.0, float(ttl_seconds))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[float, MediaInfo]] = OrderedDict()
        self._next_cleanup_at = 0.0
        self._evictions = 0

    def cache_media_info(self, message_id: str, info: MediaInfo) -> None:
        now = self._clock()
        with self._lock:
            self._maybe_cleanup_locked(now)
            self._entries.pop(message_id, None)
            self._entries[message_id] = (now + self._ttl_seconds, info)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def get_media_info(self, message_id: str) -> MediaInfo | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(message_id)
            if entry is None:
                return None
            expires_at, info = entry
            if expires_at <= now:
                self._entries.pop(message_id, None)
                return None
            return info

    @property
    def evictions(self) -> int:
        return self._evictions

    def __len__(self) -> int:
        return len(self._entries)

    def _maybe_cleanup_locked(self, now: float) -> None:
        if now < self._next_cleanup_at:
            return
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for k in expired:
            self._entries.pop(k, None)
        self._next_cleanup_at = now + CLEANUP_INTERVAL_SECONDS
