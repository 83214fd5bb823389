"""Application configuration"""
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class BackingMode(str, Enum):
    """Where ledger reads and writes go"""

    LIVE = "live"
    DEMO = "demo"


class Settings(BaseSettings):
    """Application settings"""

    # App
    app_name: str = "Portfolio Dashboard"
    debug: bool = False
    api_v1_prefix: str = "/api/v1"

    # Backing store
    backing_mode: BackingMode = BackingMode.LIVE
    database_url: Optional[str] = "sqlite+aiosqlite:///./data/portfolio.db"

    # Portfolio context
    user_id: str = "local-user"
    portfolio_id: Optional[int] = None
    default_portfolio_name: str = "My Portfolio"
    default_currency: str = "USD"

    # Accounting
    allow_oversell: bool = False  # legacy ledgers clamp oversells at zero
    recent_transactions_limit: int = 20
    top_movers_limit: int = 5

    # Panel cache
    panel_cache_ttl: int = 60  # seconds, stock prices move underneath us
    panel_cache_size: int = 32

    # Logging
    log_level: str = "INFO"
    log_format: str = "standard"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
