from __future__ import annotations

import random
from typing import Any

import pytest

from relaybot.core.dispatcher import Dispatcher
from relaybot.core.models import AutoResponseTrigger
from relaybot.core.triggers import TriggerEngine

OWNER = "15550000001@s.whatsapp.net"
USER = "15550000002@s.whatsapp.net"
GROUP = "120363000000000001@g.us"


class RecordingTransport:
    """Transport fake that records every outbound call."""

    def __init__(self, *, fail_send: bool = False) -> None:
        self.fail_send = fail_send
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.presence: list[tuple[str, str]] = []
        self.read: list[list[Any]] = []

    async def send_message(self, target: str, content: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        if self.fail_send:
            raise ConnectionError("socket closed")
        self.sent.append((target, content))
        return {"key": {"remoteJid": target, "id": f"out-{len(self.sent)}"}}

    async def send_presence_update(self, state: str, target: str) -> None:
        self.presence.append((state, target))

    async def mark_read(self, keys: list[Any]) -> None:
        self.read.append(list(keys))

    @property
    def texts(self) -> list[str]:
        return [content.get("text", "") for _, content in self.sent]


class FakeOracle:
    """Oracle fake with switchable answers and a usage log."""

    def __init__(
        self, *, limited: bool = False, grants: set[tuple[str, str]] | None = None, fail_record: bool = False
    ) -> None:
        self.limited = limited
        self.fail_record = fail_record
        self.grants = grants or set()
        self.checks: list[tuple[str, str]] = []
        self.usage: list[tuple[str, str]] = []

    async def is_rate_limited(self, identity: str, action: str) -> bool:
        self.checks.append((identity, action))
        return self.limited

    async def record_usage(self, identity: str, action: str) -> None:
        if self.fail_record:
            raise RuntimeError("usage store unavailable")
        self.usage.append((identity, action))

    async def has_grant(self, identity: str, command: str) -> bool:
        return (identity, command) in self.grants


class FakeArchive:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[Any] = []

    def record_inbound(self, raw_event: Any) -> None:
        if self.fail:
            raise OSError("disk full")
        self.events.append(raw_event)


class FakeMediaCache:
    def __init__(self) -> None:
        self.entries: dict[str, Any] = {}

    def cache_media_info(self, message_id: str, info: Any) -> None:
        self.entries[message_id] = info


class FixedRandom:
    """RandomSource returning a fixed roll and always the first choice."""

    def __init__(self, roll: float) -> None:
        self.roll = roll

    def random(self) -> float:
        return self.roll

    def choice(self, seq):
        return seq[0]


_counter = 0


def raw_event(
    content: dict[str, Any],
    *,
    chat: str = USER,
    participant: str | None = None,
    from_me: bool = False,
    message_id: str | None = None,
) -> dict[str, Any]:
    """Build a raw inbound event shaped like the chat transport's payload."""
    global _counter
    _counter += 1
    key: dict[str, Any] = {"remoteJid": chat, "fromMe": from_me, "id": message_id or f"MSG{_counter}"}
    if participant:
        key["participant"] = participant
    return {"key": key, "message": content, "messageTimestamp": 1700000000 + _counter}


def text_event(text: str, **kwargs: Any) -> dict[str, Any]:
    return raw_event({"conversation": text}, **kwargs)


def image_event(caption: str = "", **kwargs: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"mimetype": "image/jpeg"}
    if caption:
        body["caption"] = caption
    return raw_event({"imageMessage": body}, **kwargs)


def build_dispatcher(
    *,
    transport: RecordingTransport | None = None,
    oracle: FakeOracle | None = None,
    triggers: list[AutoResponseTrigger] | None = None,
    roll: float = 0.0,
    **kwargs: Any,
) -> Dispatcher:
    oracle = oracle or FakeOracle()
    engine = TriggerEngine(
        primary_identity=OWNER,
        triggers=triggers if triggers is not None else [AutoResponseTrigger("hello", 0.7, ("👋 Hello!",))],
        oracle=oracle,
        rng=FixedRandom(roll),
    )
    kwargs.setdefault("owner_identity", OWNER)
    return Dispatcher(
        transport=transport or RecordingTransport(),
        oracle=oracle,
        trigger_engine=engine,
        **kwargs,
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture(autouse=True)
def relaybot_home(tmp_path, monkeypatch: pytest.MonkeyPatch):
    home = tmp_path / "relaybot-home"
    monkeypatch.setenv("RELAYBOT_HOME", str(home))
    return home
