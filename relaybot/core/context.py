"""Context object handed to command handlers and middleware."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from relaybot.core.models import Envelope
from relaybot.core.ports import RateOraclePort, TransportPort

if TYPE_CHECKING:
    from relaybot.core.dispatcher import Dispatcher


@dataclass(slots=True)
class BotContext:
    """Plugin surface: what a handler can reach besides its envelope."""

    dispatcher: "Dispatcher"
    transport: TransportPort
    oracle: RateOraclePort
    started_at: float = field(default_factory=time.time)
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def uptime_seconds(self) -> float:
        return max(0.0, time.time() - self.started_at)

    async def reply(self, envelope: Envelope, text: str, **options: Any) -> Any:
        return await self.dispatcher.reply(envelope, text, options)

    async def send_message(self, target: str, content: dict[str, Any], **options: Any) -> Any:
        return await self.dispatcher.send_message(target, content, options)
