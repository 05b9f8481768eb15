"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class MicrofinanceConfig(BaseSettings):
    """Microfinance back-office configuration"""

    # Storage configuration
    storage_backend: str = "json"  # json, sqlite or memory
    data_dir: str = "data"  # One <collection>.json file per collection
    database_path: str = "microfinance.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 9002
    cors_origins: str = "*"  # Comma separated

    # Session configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    session_cookie_name: str = "session"
    session_max_age_days: int = 7
    auth_enabled: bool = False  # Role checks on admin endpoints

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    max_admins: int = 1
    max_collection_agents: int = 2
    provisional_id_prefix: str = "TEMP_"
    default_profile_picture: str = "https://placehold.co/100x100"

    # Demo data
    seed_demo_data: bool = False

    class Config:
        env_prefix = "MICROFINANCE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = MicrofinanceConfig()


def get_config() -> MicrofinanceConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> MicrofinanceConfig:
    """Reload configuration from environment"""
    global config
    config = MicrofinanceConfig()
    return config
