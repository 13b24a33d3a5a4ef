"""Typed dispatch core: normalization, middleware, registry, triggers."""

from relaybot.core.context import BotContext
from relaybot.core.dispatcher import Dispatcher
from relaybot.core.middleware import MiddlewareChain
from relaybot.core.models import (
    BLOCK,
    CONTINUE,
    AutoResponseTrigger,
    CommandDescriptor,
    CommandOptions,
    Decision,
    DispatchFault,
    Envelope,
    MediaInfo,
    MessageType,
)
from relaybot.core.normalize import MessageNormalizer, parse_command
from relaybot.core.registry import CommandRegistry
from relaybot.core.stats import DispatchStats
from relaybot.core.triggers import TriggerEngine

__all__ = [
    "AutoResponseTrigger",
    "BLOCK",
    "BotContext",
    "CONTINUE",
    "CommandDescriptor",
    "CommandOptions",
    "CommandRegistry",
    "Decision",
    "DispatchFault",
    "DispatchStats",
    "Dispatcher",
    "Envelope",
    "MediaInfo",
    "MessageNormalizer",
    "MessageType",
    "MiddlewareChain",
    "TriggerEngine",
    "parse_command",
]
