"""Raw transport event -> canonical :class:`Envelope`."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from loguru import logger

from relaybot.core.models import (
    CONTENT_KINDS,
    IGNORED_CONTENT_KEYS,
    MEDIA_TYPES,
    Envelope,
)
from relaybot.utils.jid import is_group_jid, normalize_jid


def parse_command(text: str, prefix: str) -> tuple[bool, str, tuple[str, ...]]:
    """Split ``text`` into ``(is_command, command, args)``.

    The prefix match is exact and case-sensitive; the command token is
    lower-cased. A text made only of the prefix yields an empty command.
    """
    if not prefix or not text.startswith(prefix):
        return False, "", ()
    parts = text[len(prefix) :].split()
    if not parts:
        return True, "", ()
    return True, parts[0].lower(), tuple(parts[1:])


def _content_key(message: Mapping[str, Any]) -> str | None:
    for key in message:
        if key in IGNORED_CONTENT_KEYS:
            continue
        return key
    return None


def _extract_text(content: Any) -> str:
    # ``conversation`` carries the body as a plain string.
    if isinstance(content, str):
        return content
    if not isinstance(content, Mapping):
        return ""
    text = content.get("text") or content.get("caption")
    if text:
        return str(text)
    # documentWithCaptionMessage wraps the real document one level down.
    inner = content.get("message")
    if isinstance(inner, Mapping):
        for value in inner.values():
            if isinstance(value, Mapping) and value.get("caption"):
                return str(value["caption"])
    return ""


class MessageNormalizer:
    """Pure transform from a raw inbound event to an :class:`Envelope`."""

    def __init__(self, *, prefix: str) -> None:
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def normalize(self, raw_event: Any) -> Envelope | None:
        """Return an envelope, or ``None`` when there is nothing to process."""
        try:
            return self._normalize(raw_event)
        except Exception as e:
            logger.warning(f"Dropping malformed inbound event: {e!r}")
            return None

    def _normalize(self, raw_event: Any) -> Envelope | None:
        message = raw_event.get("message") or {}
        kind = _content_key(message)
        if kind is None:
            logger.debug("No message type found in inbound event")
            return None
        message_type = CONTENT_KINDS.get(kind)
        if message_type is None:
            logger.debug(f"Unrecognized message type: {kind}")
            return None

        key = raw_event["key"]
        sender = normalize_jid(key["remoteJid"])
        if not sender:
            raise ValueError("inbound event has an empty remoteJid")
        is_group = is_group_jid(sender)
        if is_group:
            participant = normalize_jid(key.get("participant") or raw_event.get("participant"))
            if not participant:
                raise ValueError(f"group message in {sender} has no participant")
        else:
            participant = sender

        text = _extract_text(message[kind])
        is_command, command, args = parse_command(text, self._prefix)

        return Envelope(
            raw_message=raw_event,
            message_type=message_type,
            text=text,
            sender=sender,
            participant=participant,
            is_group=is_group,
            is_command=is_command,
            command=command,
            args=args,
            has_media=message_type in MEDIA_TYPES,
            timestamp=raw_event.get("messageTimestamp"),
            key=key,
            message_id=key.get("id"),
            from_me=bool(key.get("fromMe", False)),
        )
