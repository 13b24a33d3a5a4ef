"""Port interfaces for the collaborators the dispatcher talks to."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from relaybot.core.models import MediaInfo

T = TypeVar("T")


class TransportPort(Protocol):
    """Chat transport used for replies, presence and read receipts."""

    async def send_message(self, target: str, content: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        """Send one message and return the transport acknowledgement."""

    async def send_presence_update(self, state: str, target: str) -> None:
        """Update presence (``composing`` / ``paused``) in one chat."""

    async def mark_read(self, keys: list[Any]) -> None:
        """Send read receipts for the given message keys."""


class ArchivePort(Protocol):
    """Best-effort archive for every raw inbound event."""

    def record_inbound(self, raw_event: Any) -> None:
        """Persist one raw event (idempotent upsert)."""


class RateOraclePort(Protocol):
    """Rate-limit and permission authority."""

    async def is_rate_limited(self, identity: str, action: str) -> bool:
        """Whether ``identity`` is currently throttled for ``action``."""

    async def record_usage(self, identity: str, action: str) -> None:
        """Record one successful use of ``action`` by ``identity``."""

    async def has_grant(self, identity: str, command: str) -> bool:
        """Whether ``identity`` holds an explicit grant for ``command``."""


class MediaCachePort(Protocol):
    """Side cache for media annotations."""

    def cache_media_info(self, message_id: str, info: MediaInfo) -> None:
        """Store one media descriptor keyed by message id."""


@runtime_checkable
class TelemetryPort(Protocol):
    """Counter and event telemetry sink."""

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Increase named counter with optional labels."""


class RandomSource(Protocol):
    """Injectable randomness (``random.Random`` satisfies it)."""

    def random(self) -> float:
        """Return a float in ``[0.0, 1.0)``."""

    def choice(self, seq: Sequence[T]) -> T:
        """Pick one element uniformly."""
