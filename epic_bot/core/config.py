"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from epic_bot.core.exceptions import ConfigurationError


class SlackSettings(BaseSettings):
    """Slack configuration settings."""

    model_config = SettingsConfigDict(env_prefix="SLACK_")

    bot_token: str = Field(default="", description="Bot user OAuth token (xoxb-...)")
    signing_secret: str = Field(default="", description="Signing secret for request verification")
    api_url: str = Field(default="https://slack.com/api", description="Slack Web API base URL")
    timeout: int = Field(default=15, description="Request timeout in seconds")
    request_max_age_seconds: int = Field(
        default=300, description="Reject signed requests older than this"
    )


class AnthropicSettings(BaseSettings):
    """Text generation (Anthropic Messages API) settings."""

    model_config = SettingsConfigDict(env_prefix="ANTHROPIC_")

    api_key: str = Field(default="", description="Anthropic API key")
    api_url: str = Field(default="https://api.anthropic.com", description="API base URL")
    api_version: str = Field(default="2023-06-01", description="anthropic-version header")
    model: str = Field(default="claude-sonnet-4-5-20250929", description="Model identifier")
    max_tokens: int = Field(default=4096, description="Max tokens for story generation")
    review_max_tokens: int = Field(default=2048, description="Max tokens for reviews and single-story edits")
    timeout: int = Field(default=120, description="Request timeout in seconds")
    empty_result_retries: int = Field(
        default=1, description="Extra generation attempts when no stories could be parsed"
    )


class GitHubSettings(BaseSettings):
    """GitHub issue tracker settings."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_")

    token: str = Field(default="", description="Personal access token with issues:write")
    owner: str = Field(default="", description="Repository owner")
    repo: str = Field(default="", description="Repository name")
    api_url: str = Field(default="https://api.github.com", description="REST API base URL")
    timeout: int = Field(default=30, description="Request timeout in seconds")
    story_labels: list[str] = Field(
        default=["user-story", "epic-bot"], description="Labels applied to story issues"
    )
    readme_excerpt_chars: int = Field(
        default=3000, description="README characters passed to story generation"
    )


class SessionSettings(BaseSettings):
    """Conversation lifecycle settings."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    retention_seconds: int = Field(default=3600, description="Idle time before a session is evicted")
    sweep_interval_seconds: int = Field(default=600, description="Interval of the stale-session sweep")
    max_refinements: int = Field(default=2, description="Bulk refinements allowed after review")


class StorageSettings(BaseSettings):
    """Local epic document storage."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    epics_dir: str = Field(default="./epics", description="Directory holding epic JSON documents")


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="epic-bot", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # Sub-settings
    slack: SlackSettings = Field(default_factory=SlackSettings)
    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    def missing_required(self) -> list[str]:
        """Names of required environment variables that are not set."""
        required = {
            "SLACK_BOT_TOKEN": self.slack.bot_token,
            "SLACK_SIGNING_SECRET": self.slack.signing_secret,
            "ANTHROPIC_API_KEY": self.anthropic.api_key,
            "GITHUB_TOKEN": self.github.token,
            "GITHUB_OWNER": self.github.owner,
            "GITHUB_REPO": self.github.repo,
        }
        return [name for name, value in required.items() if not value]

    def require_credentials(self) -> None:
        """
        Fail fast when external credentials are missing.

        Raises:
            ConfigurationError: If any required variable is unset
        """
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                details={"missing": missing},
            )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()


def obscure(secret: Optional[str]) -> str:
    """Render a secret for diagnostics without revealing it."""
    if not secret:
        return "✗ Missing"
    if len(secret) <= 8:
        return "✓ Set"
    return f"✓ Set ({secret[:4]}...{secret[-4:]})"
