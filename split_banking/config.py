"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class SplitBankingConfig(BaseSettings):
    """Split-payment core configuration"""
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Currency configuration
    reference_currency: str = "RON"  # Plan commissions are tiered in this currency
    
    # Business rules configuration
    apply_split_commission: bool = False  # Applied to both the funds check and the debit
    
    # Feature flags
    enable_domain_events: bool = True
    
    class Config:
        env_prefix = "SPLIT_BANKING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = SplitBankingConfig()


def get_config() -> SplitBankingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> SplitBankingConfig:
    """Reload configuration from environment"""
    global config
    config = SplitBankingConfig()
    return config
