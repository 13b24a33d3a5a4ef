"""Ordered inspect/veto chain run on every envelope before classification.

Each middleware is called as ``fn(envelope, context)`` and may be sync or
async. Returning :data:`BLOCK` stops the chain and all later processing for
that envelope; any other value (including ``None``) means continue::

    async def drop_self(envelope, context):
        if envelope.from_me:
            return BLOCK

    chain = MiddlewareChain()
    chain.add(drop_self)
    proceed = await chain.run(envelope, context)

Faults raised by a middleware are not caught here; the dispatcher's error
boundary records them.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from loguru import logger

from relaybot.core.models import BLOCK, Envelope, MiddlewareFn

if TYPE_CHECKING:
    from relaybot.core.context import BotContext


class MiddlewareChain:
    """Middleware executed sequentially in registration order."""

    __slots__ = ("_layers",)

    def __init__(self, layers: list[MiddlewareFn] | None = None) -> None:
        self._layers: tuple[MiddlewareFn, ...] = tuple(layers or ())

    def add(self, middleware: MiddlewareFn) -> None:
        if not callable(middleware):
            raise TypeError(f"middleware must be callable, got {type(middleware).__name__}")
        # Rebind instead of appending so an in-flight run keeps its snapshot.
        self._layers = (*self._layers, middleware)

    async def run(self, envelope: Envelope, context: "BotContext") -> bool:
        """Return ``True`` to proceed, ``False`` when a middleware blocked."""
        for layer in self._layers:
            result = layer(envelope, context)
            if inspect.isawaitable(result):
                result = await result
            if result is BLOCK:
                logger.debug(f"Middleware {_layer_name(layer)} blocked message {envelope.message_id}")
                return False
        return True

    def __len__(self) -> int:
        return len(self._layers)

    def __repr__(self) -> str:
        names = [_layer_name(layer) for layer in self._layers]
        return f"MiddlewareChain({' → '.join(names)})"


def _layer_name(layer: MiddlewareFn) -> str:
    return getattr(layer, "__name__", type(layer).__name__)
