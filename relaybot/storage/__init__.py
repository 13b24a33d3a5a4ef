"""Storage backends."""

from relaybot.storage.inbound_archive import InboundArchive

__all__ = ["InboundArchive"]
