"""In-process rate-limit and permission oracle."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

from loguru import logger

from relaybot.core.triggers import AUTO_RESPONSE_ACTION
from relaybot.utils.jid import normalize_jid

WINDOW_SECONDS = 60.0
DEFAULT_COMMAND_LIMIT_PER_MINUTE = 10
DEFAULT_AUTO_RESPONSE_LIMIT_PER_MINUTE = 3
PRUNE_INTERVAL_SECONDS = 3600.0


class InMemoryRateOracle:
    """Sliding-window throttling, per-command cooldowns and command grants.

    Usage is tracked per ``(identity, action)``. Command actions share the
    command limit; ``auto_response`` has its own. A command's cooldown comes
    from ``cooldown_resolver`` and is measured from the last recorded use.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        command_limit_per_minute: int = DEFAULT_COMMAND_LIMIT_PER_MINUTE,
        auto_response_limit_per_minute: int = DEFAULT_AUTO_RESPONSE_LIMIT_PER_MINUTE,
        cooldown_resolver: Callable[[str], float] | None = None,
        exempt_identities: set[str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._enabled = enabled
        self._command_limit = max(1, int(command_limit_per_minute))
        self._auto_response_limit = max(1, int(auto_response_limit_per_minute))
        self._cooldown_resolver = cooldown_resolver
        self._exempt = {normalize_jid(value) for value in (exempt_identities or set()) if value}
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[tuple[str, str], deque[float]] = {}
        self._last_used: dict[tuple[str, str], float] = {}
        self._last_prune = clock()
        self._grants: dict[str, set[str]] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_cooldown_resolver(self, resolver: Callable[[str], float] | None) -> None:
        self._cooldown_resolver = resolver

    # ── Rate limiting ────────────────────────────────────────────────

    async def is_rate_limited(self, identity: str, action: str) -> bool:
        if not self._enabled:
            return False
        who = normalize_jid(identity)
        if who in self._exempt:
            return False
        what = action.strip().lower()
        now = self._clock()
        limit = self._auto_response_limit if what == AUTO_RESPONSE_ACTION else self._command_limit
        with self._lock:
            window = self._windows.get((who, what))
            if window is not None:
                _expire(window, now)
                if not window:
                    del self._windows[(who, what)]
                elif len(window) >= limit:
                    return True
            last_used = self._last_used.get((who, what))
        cooldown = self._cooldown_for(what)
        return bool(cooldown and last_used is not None and (now - last_used) < cooldown)

    async def record_usage(self, identity: str, action: str) -> None:
        if not self._enabled:
            return
        key = (normalize_jid(identity), action.strip().lower())
        now = self._clock()
        with self._lock:
            self._windows.setdefault(key, deque()).append(now)
            self._last_used[key] = now
        if now - self._last_prune >= PRUNE_INTERVAL_SECONDS:
            self.prune()

    def prune(self) -> int:
        """Drop expired windows and usage older than its cooldown; returns entries removed."""
        now = self._clock()
        with self._lock:
            self._last_prune = now
            keys = list(self._last_used)
        cooldowns = {what: self._cooldown_for(what) for _, what in keys}
        removed = 0
        with self._lock:
            for key, window in list(self._windows.items()):
                _expire(window, now)
                if not window:
                    del self._windows[key]
                    removed += 1
            for key in keys:
                last_used = self._last_used.get(key)
                if last_used is None:
                    continue
                if now - last_used >= max(WINDOW_SECONDS, cooldowns.get(key[1], 0.0)):
                    del self._last_used[key]
                    removed += 1
        if removed:
            logger.debug(f"Pruned {removed} stale rate-limit entries")
        return removed

    def _cooldown_for(self, action: str) -> float:
        if self._cooldown_resolver is None or action == AUTO_RESPONSE_ACTION:
            return 0.0
        try:
            return max(0.0, float(self._cooldown_resolver(action) or 0.0))
        except Exception as e:
            logger.warning(f"cooldown lookup failed for {action}: {e}")
            return 0.0

    # ── Grants ───────────────────────────────────────────────────────

    async def has_grant(self, identity: str, command: str) -> bool:
        with self._lock:
            return command.strip().lower() in self._grants.get(normalize_jid(identity), set())

    def add_grant(self, identity: str, command: str) -> bool:
        """Grant ``command`` to ``identity``; returns ``False`` if already held."""
        who = normalize_jid(identity)
        what = command.strip().lower()
        if not who or not what:
            raise ValueError("grant needs both an identity and a command")
        with self._lock:
            held = self._grants.setdefault(who, set())
            if what in held:
                return False
            held.add(what)
        logger.info(f"Granted {what} to {who}")
        return True

    def remove_grant(self, identity: str, command: str) -> bool:
        """Revoke one grant; returns whether it existed."""
        who = normalize_jid(identity)
        what = command.strip().lower()
        with self._lock:
            held = self._grants.get(who)
            if not held or what not in held:
                return False
            held.discard(what)
            if not held:
                self._grants.pop(who, None)
        logger.info(f"Revoked {what} from {who}")
        return True

    def grants_for(self, identity: str) -> list[str]:
        with self._lock:
            return sorted(self._grants.get(normalize_jid(identity), set()))

    def all_grants(self) -> dict[str, list[str]]:
        with self._lock:
            return {who: sorted(commands) for who, commands in sorted(self._grants.items())}


def _expire(window: deque[float], now: float) -> None:
    while window and (now - window[0]) >= WINDOW_SECONDS:
        window.popleft()
