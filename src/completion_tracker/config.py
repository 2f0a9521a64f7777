"""Configuration for the completion tracker.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Each component gets its own settings group so TTLs, window sizes and batch
sizes live in one place instead of being repeated at call sites.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ReconfirmPolicy = Literal["overwrite", "reject"]


class HandshakeConfig(BaseSettings):
    """Settings for the initiate/confirm handshake."""

    marker_ttl_seconds: int = Field(
        default=90 * 24 * 60 * 60,
        gt=0,
        description="Lifetime of a confirmed completion marker",
    )
    reconfirm_policy: ReconfirmPolicy = Field(
        default="overwrite",
        description=(
            "What to do when a marker for the same bucket already exists. "
            "'overwrite' keeps last-writer-wins semantics; 'reject' refuses the second confirm."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="COMPLETION_HANDSHAKE_",
        env_file=".env",
        extra="ignore",
    )


class ScannerConfig(BaseSettings):
    """Settings for the rotation scan/stage step."""

    key_prefix: str = Field(
        default="completion:",
        description="Keyspace prefix iterated by the scanner",
    )
    scan_count: int = Field(
        default=100,
        gt=0,
        description="COUNT hint passed to each SCAN call",
    )
    batch_ttl_seconds: int = Field(
        default=60 * 60,
        gt=0,
        description="Lifetime of a staged reset batch that is never committed",
    )
    batch_id: str = Field(
        default="completionKeys",
        min_length=1,
        description="Identifier of the staged reset batch",
    )
    window_months: int = Field(
        default=1,
        ge=1,
        le=24,
        description="How many full calendar months before the current one are swept",
    )

    model_config = SettingsConfigDict(
        env_prefix="COMPLETION_SCANNER_",
        env_file=".env",
        extra="ignore",
    )


class CommitterConfig(BaseSettings):
    """Settings for the reset commit step."""

    score_user_ids: str = Field(
        default="",
        description=(
            "Comma-separated user ids whose score aggregates are reset in addition to "
            "every task assignee."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="COMPLETION_COMMITTER_",
        env_file=".env",
        extra="ignore",
    )

    def parsed_score_user_ids(self) -> list[str]:
        return [u.strip() for u in self.score_user_ids.split(",") if u.strip()]


class TrackerSettings(BaseSettings):
    """Top-level settings.

    Environment variables:
    - REDIS_URL
    - LOG_LEVEL                       (optional)
    - COMPLETION_RESET_SECRET         (optional; reset routes refuse to run without it)
    - COMPLETION_CRON_SECRET          (optional; scheduler trigger refuses to run without it)
    - COMPLETION_CORS_ORIGINS         (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `TrackerSettings(_env_file=path_to_env)`.
    """

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias="REDIS_URL",
        description="Connection URL of the Redis instance holding markers and tasks",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    reset_secret: str = Field(
        default="",
        validation_alias="COMPLETION_RESET_SECRET",
        description="Bearer secret protecting the reset scan/confirm routes",
    )
    cron_secret: str = Field(
        default="",
        validation_alias="COMPLETION_CRON_SECRET",
        description="Bearer secret protecting the scheduled rotation trigger",
    )

    # Dev-friendly CORS. Override via COMPLETION_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        validation_alias="COMPLETION_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    handshake: HandshakeConfig = Field(default_factory=HandshakeConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    committer: CommitterConfig = Field(default_factory=CommitterConfig)

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
