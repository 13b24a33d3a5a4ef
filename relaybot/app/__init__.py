"""Application wiring."""

from relaybot.app.bootstrap import BotRuntime, build_runtime

__all__ = ["BotRuntime", "build_runtime"]
