"""
Configuration management for Portfolio Ledger.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Database
    database_url: str = "sqlite:///portfolio_ledger.db"
    db_echo: bool = False

    # Logging
    log_level: str = "INFO"

    # Optimistic-concurrency retries on the holding row
    conflict_retry_attempts: int = 3
    conflict_retry_wait_min: float = 0.05
    conflict_retry_wait_max: float = 1.0

    # Position recomputation
    position_recompute_mode: Literal["incremental", "replay"] = "incremental"
    repair_depletion_gap: bool = True

    # Valuation (display only)
    valuation_enabled: bool = True

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def uses_replay(self) -> bool:
        """Check if every write recomputes the holding from its full log."""
        return self.position_recompute_mode == "replay"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
