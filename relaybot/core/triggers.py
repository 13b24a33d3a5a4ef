"""Probabilistic auto-responses for free text from the primary identity."""

from __future__ import annotations

import random
from collections.abc import Sequence

from loguru import logger

from relaybot.core.models import AutoResponseTrigger, Envelope
from relaybot.core.ports import RandomSource, RateOraclePort
from relaybot.utils.jid import normalize_jid

AUTO_RESPONSE_ACTION = "auto_response"


class TriggerEngine:
    """Match plain text against an ordered trigger table.

    Only the first matching phrase is considered. Its probability decides
    whether a reply fires at all; the reply text is drawn uniformly from the
    trigger's responses. Other authors than the primary identity are ignored.
    """

    def __init__(
        self,
        *,
        primary_identity: str,
        triggers: Sequence[AutoResponseTrigger],
        oracle: RateOraclePort | None = None,
        rng: RandomSource | None = None,
        enabled: bool = True,
    ) -> None:
        self._primary_identity = normalize_jid(primary_identity)
        self._triggers = tuple(triggers)
        self._oracle = oracle
        self._rng: RandomSource = rng or random.Random()
        self._enabled = enabled

    @property
    def triggers(self) -> tuple[AutoResponseTrigger, ...]:
        return self._triggers

    def match(self, text: str) -> AutoResponseTrigger | None:
        lowered = text.lower()
        for trigger in self._triggers:
            if trigger.phrase.lower() in lowered:
                return trigger
        return None

    async def maybe_respond(self, envelope: Envelope) -> str | None:
        """Return reply text, or ``None`` when no auto-response fires."""
        if not self._enabled or not self._primary_identity:
            return None
        if envelope.is_command or envelope.participant != self._primary_identity:
            return None

        trigger = self.match(envelope.text)
        if trigger is None:
            return None
        if self._rng.random() >= trigger.probability:
            return None

        if self._oracle is not None:
            if await self._oracle.is_rate_limited(envelope.participant, AUTO_RESPONSE_ACTION):
                logger.debug(f"Auto-response for {trigger.phrase!r} skipped: rate limited")
                return None
            await self._oracle.record_usage(envelope.participant, AUTO_RESPONSE_ACTION)

        return self._rng.choice(trigger.responses)
