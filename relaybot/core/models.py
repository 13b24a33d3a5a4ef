"""Domain models for the dispatch pipeline."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

if TYPE_CHECKING:
    from relaybot.core.context import BotContext

ChatId: TypeAlias = str
MessageId: TypeAlias = str
FaultKind: TypeAlias = Literal["malformed_input", "policy_denied", "handler_fault", "collaborator_fault"]


class MessageType(str, Enum):
    """Content kind carried by one inbound event."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    OTHER = "other"


MEDIA_TYPES: frozenset[MessageType] = frozenset(
    {
        MessageType.IMAGE,
        MessageType.VIDEO,
        MessageType.AUDIO,
        MessageType.DOCUMENT,
        MessageType.STICKER,
    }
)

# Transport content keys understood by the normalizer.
CONTENT_KINDS: dict[str, MessageType] = {
    "conversation": MessageType.TEXT,
    "extendedTextMessage": MessageType.TEXT,
    "imageMessage": MessageType.IMAGE,
    "videoMessage": MessageType.VIDEO,
    "audioMessage": MessageType.AUDIO,
    "documentMessage": MessageType.DOCUMENT,
    "documentWithCaptionMessage": MessageType.DOCUMENT,
    "stickerMessage": MessageType.STICKER,
    "contactMessage": MessageType.OTHER,
    "locationMessage": MessageType.OTHER,
    "liveLocationMessage": MessageType.OTHER,
    "pollCreationMessage": MessageType.OTHER,
    "reactionMessage": MessageType.OTHER,
    "buttonsResponseMessage": MessageType.OTHER,
    "listResponseMessage": MessageType.OTHER,
    "templateButtonReplyMessage": MessageType.OTHER,
}

# Bookkeeping keys that travel next to the real content key.
IGNORED_CONTENT_KEYS: frozenset[str] = frozenset({"messageContextInfo", "senderKeyDistributionMessage"})


class Decision(Enum):
    """Middleware verdict for one envelope."""

    CONTINUE = "continue"
    BLOCK = "block"


CONTINUE = Decision.CONTINUE
BLOCK = Decision.BLOCK


@dataclass(frozen=True, slots=True, kw_only=True)
class Envelope:
    """Canonical, immutable view of one inbound chat event."""

    raw_message: Any
    message_type: MessageType
    text: str
    sender: ChatId
    participant: str
    is_group: bool
    is_command: bool = False
    command: str = ""
    args: tuple[str, ...] = ()
    has_media: bool = False
    timestamp: Any = None
    key: Any = None
    message_id: MessageId | None = None
    from_me: bool = False


CommandHandler: TypeAlias = Callable[[Envelope, "BotContext"], Awaitable[None] | None]
MiddlewareFn: TypeAlias = Callable[[Envelope, "BotContext"], Awaitable[Decision | None] | Decision | None]


@dataclass(frozen=True, slots=True, kw_only=True)
class CommandOptions:
    """Registration options; ``None`` means "use the registry default"."""

    description: str | None = None
    category: str | None = None
    usage: str | None = None
    owner_only: bool = False
    group_only: bool = False
    private_only: bool = False
    cooldown: float = 0.0


@dataclass(frozen=True, slots=True, kw_only=True)
class CommandDescriptor:
    """Registered handler plus its display and visibility metadata."""

    name: str
    handler: CommandHandler
    description: str = "No description"
    category: str = "general"
    usage: str = ""
    owner_only: bool = False
    group_only: bool = False
    private_only: bool = False
    cooldown: float = 0.0


@dataclass(frozen=True, slots=True)
class MediaInfo:
    """Lightweight media annotation kept in the side cache."""

    type: MessageType
    sender: str
    timestamp: Any = None


@dataclass(frozen=True, slots=True)
class AutoResponseTrigger:
    """One row of the auto-response trigger table."""

    phrase: str
    probability: float
    responses: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.phrase.strip():
            raise ValueError("trigger phrase must not be empty")
        if not 0.0 <= self.probability <= 1.0:
            raise ValueError(f"trigger probability must be within [0, 1], got {self.probability}")
        if not self.responses:
            raise ValueError(f"trigger {self.phrase!r} needs at least one response")


@dataclass(frozen=True, slots=True, kw_only=True)
class DispatchFault:
    """One contained fault, kept for diagnostics."""

    kind: FaultKind
    error: str
    message_id: MessageId | None = None
    command: str = ""
    at: datetime = field(default_factory=lambda: datetime.now(UTC))
