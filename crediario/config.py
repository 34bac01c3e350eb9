"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class CrediarioConfig(BaseSettings):
    """Crediário service configuration"""
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1
    
    # Actor token configuration
    jwt_secret: str = "crediario-development-secret-change-in-production"
    jwt_expiry_hours: int = 8
    jwt_algorithm: str = "HS256"
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules configuration
    default_due_days: int = 30  # Due date of a new credit grant
    upcoming_window_days: int = 7  # "A vencer" reminder window
    
    # Demo data
    seed_demo_data: bool = True
    seed_random_seed: Optional[int] = 42
    seed_merchants: int = 8
    seed_clients: int = 25
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "CREDIARIO_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = CrediarioConfig()


def get_config() -> CrediarioConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CrediarioConfig:
    """Reload configuration from environment"""
    global config
    config = CrediarioConfig()
    return config
