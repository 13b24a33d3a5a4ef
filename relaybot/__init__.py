"""relaybot - chat message ingestion and command dispatch."""

__version__ = "0.1.0"
__logo__ = "📨"
