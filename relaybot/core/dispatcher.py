"""Inbound dispatcher: normalize, filter, classify, authorize, invoke."""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import Callable
from typing import Any

from loguru import logger

from relaybot.core.context import BotContext
from relaybot.core.middleware import MiddlewareChain
from relaybot.core.models import (
    CommandDescriptor,
    CommandHandler,
    CommandOptions,
    DispatchFault,
    Envelope,
    FaultKind,
    MediaInfo,
    MiddlewareFn,
)
from relaybot.core.normalize import MessageNormalizer
from relaybot.core.ports import (
    ArchivePort,
    MediaCachePort,
    RateOraclePort,
    TelemetryPort,
    TransportPort,
)
from relaybot.core.registry import CommandRegistry
from relaybot.core.stats import DispatchStats
from relaybot.core.triggers import TriggerEngine
from relaybot.utils.jid import normalize_jid

DEFAULT_DENIAL_MESSAGE = "❌ You don't have permission to use this command."
DEFAULT_FAILURE_MESSAGE = "⚠️ An error occurred while processing your request."
RECENT_FAULTS_LIMIT = 50


class Dispatcher:
    """Final error boundary for one inbound event.

    ``process`` never raises (cancellation aside): faults are counted in
    ``errors``, logged and kept in ``recent_faults``. Unknown and
    rate-limited commands are dropped without a reply so probing traffic
    learns nothing about the command surface.
    """

    def __init__(
        self,
        *,
        transport: TransportPort,
        oracle: RateOraclePort,
        archive: ArchivePort | None = None,
        media_cache: MediaCachePort | None = None,
        telemetry: TelemetryPort | None = None,
        trigger_engine: TriggerEngine | None = None,
        registry: CommandRegistry | None = None,
        middleware: MiddlewareChain | None = None,
        stats: DispatchStats | None = None,
        prefix: str = ".",
        owner_identity: str = "",
        auto_read: bool = False,
        auto_typing: bool = False,
        handler_timeout_seconds: float | None = 30.0,
        denial_message: str = DEFAULT_DENIAL_MESSAGE,
        failure_message: str = DEFAULT_FAILURE_MESSAGE,
        require_grants: bool = False,
    ) -> None:
        self._transport = transport
        self._oracle = oracle
        self._archive = archive
        self._media_cache = media_cache
        self._telemetry = telemetry
        self._trigger_engine = trigger_engine
        self._normalizer = MessageNormalizer(prefix=prefix)
        self._registry = registry if registry is not None else CommandRegistry(prefix=prefix)
        self._middleware = middleware if middleware is not None else MiddlewareChain()
        self._stats = stats if stats is not None else DispatchStats()
        self._owner_identity = normalize_jid(owner_identity)
        self._auto_read = auto_read
        self._auto_typing = auto_typing
        self._handler_timeout_seconds = (
            None if handler_timeout_seconds is None or handler_timeout_seconds <= 0 else float(handler_timeout_seconds)
        )
        self._denial_message = denial_message
        self._failure_message = failure_message
        self._require_grants = require_grants
        self._recent_faults: deque[DispatchFault] = deque(maxlen=RECENT_FAULTS_LIMIT)
        self.context = BotContext(dispatcher=self, transport=transport, oracle=oracle)

    # ── Properties ───────────────────────────────────────────────────

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def middleware(self) -> MiddlewareChain:
        return self._middleware

    @property
    def stats(self) -> DispatchStats:
        return self._stats

    @property
    def normalizer(self) -> MessageNormalizer:
        return self._normalizer

    @property
    def owner_identity(self) -> str:
        return self._owner_identity

    @property
    def recent_faults(self) -> list[DispatchFault]:
        return list(self._recent_faults)

    # ── Pipeline ─────────────────────────────────────────────────────

    async def process(self, raw_event: Any) -> None:
        """Run one raw inbound event through the whole pipeline."""
        envelope: Envelope | None = None
        stage = "normalize"
        try:
            self._archive_inbound(raw_event)

            envelope = self._normalizer.normalize(raw_event)
            if envelope is None:
                self._metric("event_drop_malformed")
                return
            if not envelope.text:
                self._metric("event_drop_empty", envelope.message_type.value)
                return

            self._stats.incr("processed")
            logger.debug(
                f"Processing {envelope.message_type.value} message {envelope.message_id} "
                f"from {envelope.participant} in {envelope.sender} (command={envelope.is_command})"
            )

            stage = "middleware"
            if not await self._middleware.run(envelope, self.context):
                self._metric("middleware_blocked")
                return

            stage = "dispatch"
            if envelope.is_command:
                await self._handle_command(envelope)
            elif envelope.has_media:
                await self._handle_media(envelope)
            else:
                await self._handle_text(envelope)
        except Exception as e:
            self._stats.incr("errors")
            kind: FaultKind = "handler_fault" if stage == "middleware" else "collaborator_fault"
            self._record_fault(kind, e, envelope)
            logger.exception(f"Error processing message at stage {stage}: {e}")

    async def _handle_command(self, envelope: Envelope) -> None:
        self._stats.incr("commands_executed")

        descriptor = self._registry.lookup(envelope.command)
        if descriptor is None:
            logger.debug(f"Command {envelope.command!r} not found in registered commands")
            self._metric("command_unknown")
            return

        typing_started = False
        invoking = False
        succeeded = False
        try:
            if not await self._authorize(descriptor, envelope):
                logger.warning(f"Permission denied for command {descriptor.name} ({envelope.participant})")
                self._metric("command_denied", descriptor.name)
                await self.reply(envelope, self._denial_message)
                return

            if await self._oracle.is_rate_limited(envelope.participant, descriptor.name):
                logger.warning(f"Rate limited for command {descriptor.name} ({envelope.participant})")
                self._metric("command_rate_limited", descriptor.name)
                return

            if self._auto_read:
                await self._transport.mark_read([envelope.key])
            if self._auto_typing:
                await self._transport.send_presence_update("composing", envelope.sender)
                typing_started = True

            invoking = True
            await self._invoke(descriptor, envelope)
            invoking = False
            succeeded = True

            self._metric("command_succeeded", descriptor.name)
            logger.info(f"Command executed successfully: {descriptor.name}")
        except Exception as e:
            self._stats.incr("errors")
            self._record_fault("handler_fault" if invoking else "collaborator_fault", e, envelope)
            self._metric("command_failed", descriptor.name)
            if isinstance(e, TimeoutError):
                logger.error(f"Command {descriptor.name} timed out after {self._handler_timeout_seconds}s")
            else:
                logger.exception(f"Error handling command {descriptor.name}: {e}")
            await self.reply(envelope, self._failure_message)
        finally:
            if typing_started:
                await self._transport.send_presence_update("paused", envelope.sender)

        if succeeded:
            await self._record_usage(envelope, descriptor)

    async def _handle_media(self, envelope: Envelope) -> None:
        self._stats.incr("media_messages")
        try:
            if self._auto_read:
                await self._transport.mark_read([envelope.key])
            if self._media_cache is not None and envelope.message_id:
                self._media_cache.cache_media_info(
                    envelope.message_id,
                    MediaInfo(
                        type=envelope.message_type,
                        sender=envelope.participant,
                        timestamp=envelope.timestamp,
                    ),
                )
        except Exception as e:
            self._record_fault("collaborator_fault", e, envelope)
            logger.error(f"Error handling media: {e}")

    async def _handle_text(self, envelope: Envelope) -> None:
        try:
            if self._auto_read:
                await self._transport.mark_read([envelope.key])
            if self._trigger_engine is None:
                return
            response = await self._trigger_engine.maybe_respond(envelope)
            if response:
                await self.reply(envelope, response)
                self._metric("auto_response_sent")
        except Exception as e:
            self._record_fault("collaborator_fault", e, envelope)
            logger.error(f"Error handling text: {e}")

    async def _invoke(self, descriptor: CommandDescriptor, envelope: Envelope) -> None:
        handler = descriptor.handler

        async def call() -> None:
            # Sync handlers run in a worker thread so a blocking one cannot
            # stall the loop or outlive the timeout.
            if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None)):
                result = handler(envelope, self.context)
            else:
                result = await asyncio.to_thread(handler, envelope, self.context)
            if inspect.isawaitable(result):
                await result

        if self._handler_timeout_seconds is None:
            await call()
        else:
            await asyncio.wait_for(call(), timeout=self._handler_timeout_seconds)

    # ── Authorization ────────────────────────────────────────────────

    def check_permissions(self, descriptor: CommandDescriptor, participant: str, is_group: bool) -> bool:
        """Visibility check from the descriptor flags alone.

        Owner-only commands are open to the configured owner and nobody else.
        A command flagged both group-only and private-only is never allowed.
        """
        if descriptor.owner_only:
            return bool(self._owner_identity) and participant == self._owner_identity
        if descriptor.group_only and not is_group:
            return False
        if descriptor.private_only and is_group:
            return False
        return True

    async def _authorize(self, descriptor: CommandDescriptor, envelope: Envelope) -> bool:
        if not self.check_permissions(descriptor, envelope.participant, envelope.is_group):
            return False
        if descriptor.owner_only or not self._require_grants:
            return True
        if envelope.participant == self._owner_identity:
            return True
        return await self._oracle.has_grant(envelope.participant, descriptor.name)

    # ── Plugin surface ───────────────────────────────────────────────

    def register_command(
        self,
        name: str,
        handler: CommandHandler,
        options: CommandOptions | None = None,
        **kwargs: Any,
    ) -> CommandDescriptor:
        if options is not None and kwargs:
            raise TypeError("pass either options or keyword options, not both")
        if kwargs:
            options = CommandOptions(**kwargs)
        return self._registry.register(name, handler, options)

    def register_middleware(self, middleware: MiddlewareFn) -> None:
        if not callable(middleware):
            logger.warning(f"Ignoring non-callable middleware: {middleware!r}")
            return
        self._middleware.add(middleware)
        logger.debug("Registered middleware")

    def get_commands(self, category: str | None = None) -> list[CommandDescriptor]:
        return self._registry.list(category)

    def clear_commands(self) -> None:
        self._registry.clear()

    def reload_commands(self, populate: Callable[[CommandRegistry], None]) -> int:
        return self._registry.reload(populate)

    def get_stats(self) -> dict[str, int]:
        return {
            **self._stats.snapshot(),
            "commands_registered": len(self._registry),
            "middlewares_registered": len(self._middleware),
        }

    async def reply(self, envelope: Envelope, text: str, options: dict[str, Any] | None = None) -> Any:
        """Send ``text`` to the envelope's chat, quoting it unless ``quote=False``.

        Transport failures are logged and re-raised: the caller decides
        whether a lost reply matters.
        """
        opts = dict(options or {})
        quote = opts.pop("quote", True)
        content: dict[str, Any] = {"text": text, **opts}
        if quote is not False:
            content["quoted"] = envelope.raw_message
        try:
            ack = await self._transport.send_message(envelope.sender, content)
        except Exception as e:
            logger.error(f"Error sending reply to {envelope.sender}: {e}")
            raise
        self._stats.incr("messages_sent")
        return ack

    async def send_message(self, target: str, content: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        try:
            ack = await self._transport.send_message(target, content, options or {})
        except Exception as e:
            logger.error(f"Error sending message to {target}: {e}")
            raise
        self._stats.incr("messages_sent")
        return ack

    # ── Internals ────────────────────────────────────────────────────

    async def _record_usage(self, envelope: Envelope, descriptor: CommandDescriptor) -> None:
        # The command already completed: no failure reply, no error count.
        try:
            await self._oracle.record_usage(envelope.participant, descriptor.name)
        except Exception as e:
            self._record_fault("collaborator_fault", e, envelope)
            logger.error(f"Failed to record usage of {descriptor.name}: {e}")

    def _archive_inbound(self, raw_event: Any) -> None:
        if self._archive is None:
            return
        try:
            self._archive.record_inbound(raw_event)
        except Exception as e:
            self._metric("archive_failed")
            self._record_fault("collaborator_fault", e, None)
            logger.warning(f"Inbound archive failed, continuing: {e}")

    def _record_fault(self, kind: FaultKind, error: BaseException, envelope: Envelope | None) -> None:
        self._recent_faults.append(
            DispatchFault(
                kind=kind,
                error=f"{type(error).__name__}: {error}",
                message_id=envelope.message_id if envelope else None,
                command=envelope.command if envelope and envelope.is_command else "",
            )
        )

    def _metric(self, name: str, detail: str | None = None) -> None:
        if self._telemetry is None:
            return
        labels = (("detail", detail),) if detail else ()
        self._telemetry.incr(name, labels=labels)
