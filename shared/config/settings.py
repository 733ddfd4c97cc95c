"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server binding. PORT is the variable most hosting platforms inject.
    host: str = "0.0.0.0"
    port: int = 3000

    # Environment
    environment: str = "development"
    debug: bool = False

    # Comma-separated list of allowed CORS origins ("*" allows any origin)
    allowed_origins: str = "*"

    # Relay limits
    relay_max_history: int = 100  # Chat messages replayed to new connections
    relay_max_message_length: int = 500  # Characters kept after trimming
    relay_max_username_length: int = 20  # Characters kept after trimming

    # Relay timers (seconds)
    relay_heartbeat_interval: float = 30.0  # Liveness sweep period
    relay_shutdown_grace_period: float = 5.0  # Forced exit after this on shutdown
    relay_status_log_interval: float = 60.0  # "Server alive" status line period

    # Outbound frames buffered per connection; 0 means unbounded
    relay_outbound_queue_limit: int = 0

    @property
    def cors_origins(self) -> list[str]:
        """Parsed CORS origin list."""
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]

    def validate_relay_limits(self) -> list[str]:
        """
        Validate relay limits and timers.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.relay_max_history < 1:
            errors.append("RELAY_MAX_HISTORY must be at least 1")
        if self.relay_max_message_length < 1:
            errors.append("RELAY_MAX_MESSAGE_LENGTH must be at least 1")
        if self.relay_max_username_length < 1:
            errors.append("RELAY_MAX_USERNAME_LENGTH must be at least 1")
        if self.relay_heartbeat_interval <= 0:
            errors.append("RELAY_HEARTBEAT_INTERVAL must be positive")
        if self.relay_shutdown_grace_period <= 0:
            errors.append("RELAY_SHUTDOWN_GRACE_PERIOD must be positive")
        if self.relay_status_log_interval <= 0:
            errors.append("RELAY_STATUS_LOG_INTERVAL must be positive")
        if self.relay_outbound_queue_limit < 0:
            errors.append("RELAY_OUTBOUND_QUEUE_LIMIT must be zero or positive")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
