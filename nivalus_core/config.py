"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class NivalusConfig(BaseSettings):
    """Nivalus banking core configuration"""

    # Database configuration
    database_url: str = "sqlite:///nivalus.db"  # "memory://" selects in-memory storage

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5001

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Default policy values, written on first settings read
    default_minimum_balance: str = "100.00"
    default_max_transaction_limit: str = "10000.00"
    default_daily_transaction_limit: str = "50000.00"
    default_transaction_fee: str = "1.00"

    # Account defaults
    default_initial_balance: str = "0.00"
    recent_activity_limit: int = 100

    # Concurrency
    lock_timeout_seconds: float = 5.0

    # Avatar storage
    avatar_dir: str = "assets/avatars"
    avatar_url_prefix: str = "/assets/avatars"
    avatar_max_bytes: int = 2 * 1024 * 1024  # 2MB

    # Rate limiting
    rate_limit_requests: int = 60
    rate_limit_window_seconds: float = 60.0
    rate_limit_max_keys: int = 10000

    # Feature flags
    enable_audit_logging: bool = True
    enable_rate_limiting: bool = True

    log_file: Optional[str] = None  # If None, logs to stdout

    model_config = SettingsConfigDict(
        env_prefix="NIVALUS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global configuration instance
config = NivalusConfig()


def get_config() -> NivalusConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> NivalusConfig:
    """Reload configuration from environment"""
    global config
    config = NivalusConfig()
    return config
