"""
Configuration Management Module

Centralized configuration using pydantic-settings. Every value can be
overridden from the environment with the ``RETAIL_BANK_`` prefix or a
``.env`` file.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class BankConfig(BaseSettings):
    """Retail banking core configuration"""

    # Storage configuration
    use_sqlite: bool = True
    database_path: str = "retail_bank.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    exchange_fee_rate: str = "0.01"  # 1% of the exchanged amount
    reference_max_attempts: int = 5
    history_limit: int = 100
    search_limit: int = 50
    upcoming_bills_days: int = 30
    max_pin_attempts: int = 3

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "RETAIL_BANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
