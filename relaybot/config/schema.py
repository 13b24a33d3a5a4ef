"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from relaybot.config.defaults import (
    DEFAULT_ARCHIVE,
    DEFAULT_BOT,
    DEFAULT_MEDIA_CACHE,
    DEFAULT_RATE_LIMIT,
    DEFAULT_TELEMETRY,
    default_trigger_rules,
)
from relaybot.core.models import AutoResponseTrigger
from relaybot.utils.jid import phone_to_jid


class BotConfig(BaseModel):
    """Dispatcher behaviour."""

    model_config = ConfigDict(extra="ignore")

    prefix: str = str(DEFAULT_BOT["prefix"])
    owner_number: str = str(DEFAULT_BOT["owner_number"])
    auto_read: bool = bool(DEFAULT_BOT["auto_read"])
    auto_typing: bool = bool(DEFAULT_BOT["auto_typing"])
    handler_timeout_seconds: float | None = Field(default=float(DEFAULT_BOT["handler_timeout_seconds"]), ge=0)
    denial_message: str = str(DEFAULT_BOT["denial_message"])
    failure_message: str = str(DEFAULT_BOT["failure_message"])
    require_grants: bool = bool(DEFAULT_BOT["require_grants"])
    plugins: list[str] = Field(default_factory=lambda: list(DEFAULT_BOT["plugins"]))

    @field_validator("prefix")
    @classmethod
    def _prefix_not_blank(cls, value: str) -> str:
        if not value or value.isspace():
            raise ValueError("bot.prefix must not be empty")
        return value

    @property
    def owner_jid(self) -> str:
        return phone_to_jid(self.owner_number)


class RateLimitConfig(BaseModel):
    """Throttling applied by the in-process oracle."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = bool(DEFAULT_RATE_LIMIT["enabled"])
    command_limit_per_minute: int = Field(default=int(DEFAULT_RATE_LIMIT["command_limit_per_minute"]), ge=1)
    auto_response_limit_per_minute: int = Field(
        default=int(DEFAULT_RATE_LIMIT["auto_response_limit_per_minute"]), ge=1
    )


class TriggerRuleConfig(BaseModel):
    """One auto-response rule."""

    model_config = ConfigDict(extra="ignore")

    phrase: str = Field(min_length=1)
    probability: float = Field(ge=0.0, le=1.0)
    responses: list[str] = Field(min_length=1)

    def to_trigger(self) -> AutoResponseTrigger:
        return AutoResponseTrigger(
            phrase=self.phrase,
            probability=self.probability,
            responses=tuple(self.responses),
        )


def _default_trigger_rules() -> list[TriggerRuleConfig]:
    return [TriggerRuleConfig.model_validate(rule) for rule in default_trigger_rules()]


class TriggersConfig(BaseModel):
    """Auto-response trigger engine settings."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    primary_identity: str = ""  # empty means the bot owner
    rules: list[TriggerRuleConfig] = Field(default_factory=_default_trigger_rules)


class ArchiveConfig(BaseModel):
    """Inbound archive (anti-delete) settings."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = bool(DEFAULT_ARCHIVE["enabled"])
    db_path: str = str(DEFAULT_ARCHIVE["db_path"])
    retention_days: int = Field(default=int(DEFAULT_ARCHIVE["retention_days"]), ge=1)

    @property
    def resolved_db_path(self) -> Path:
        from relaybot.utils.helpers import expand_data_path

        return expand_data_path(self.db_path)


class MediaCacheConfig(BaseModel):
    """Media annotation cache bounds."""

    model_config = ConfigDict(extra="ignore")

    ttl_seconds: float = Field(default=float(DEFAULT_MEDIA_CACHE["ttl_seconds"]), gt=0)
    max_entries: int = Field(default=int(DEFAULT_MEDIA_CACHE["max_entries"]), ge=1)


class TelemetryConfig(BaseModel):
    """Dispatch counters backend. `serve` exposes /metrics for the prometheus backend."""

    model_config = ConfigDict(extra="ignore")

    backend: Literal["memory", "prometheus"] = DEFAULT_TELEMETRY["backend"]
    serve: bool = bool(DEFAULT_TELEMETRY["serve"])
    host: str = str(DEFAULT_TELEMETRY["host"])
    port: int = Field(default=int(DEFAULT_TELEMETRY["port"]), ge=1, le=65535)


class Config(BaseSettings):
    """Root configuration for relaybot."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, env_prefix="RELAYBOT_", env_nested_delimiter="__")

    config_version: int = 1
    bot: BotConfig = Field(default_factory=BotConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    triggers: TriggersConfig = Field(default_factory=TriggersConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    media_cache: MediaCacheConfig = Field(default_factory=MediaCacheConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @property
    def primary_identity(self) -> str:
        """Identity served by the trigger engine (falls back to the owner)."""
        explicit = phone_to_jid(self.triggers.primary_identity)
        return explicit or self.bot.owner_jid
