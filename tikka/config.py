from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings"""

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///./tikka.db"

    # Ledger Configuration
    EVENT_NAMESPACE: str = "tikka"
    CONTRACT_ACCOUNT: str = "tikka:escrow"  # Account that holds escrowed funds

    # Contract bootstrap (applied by `initialize` on first start)
    ADMIN_ACCOUNT: Optional[str] = None
    PROTOCOL_FEE_BP: int = 250  # 100 bp = 1%
    TREASURY_ACCOUNT: Optional[str] = None
    ORACLE_ACCOUNT: Optional[str] = None

    # Random.org API (external randomness oracle)
    RANDOM_ORG_API_KEY: Optional[str] = None
    ORACLE_POLL_INTERVAL: int = 15  # Seconds between pending-randomness checks

    # API
    API_VERSION: str = "1.0.0"
    API_SHARED_SECRET: str = "change-me"  # HMAC key for Authorization headers
    DEBUG: bool = False
    RUN_MIGRATIONS: bool = False  # Use alembic instead of create_all on startup

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("PROTOCOL_FEE_BP")
    @classmethod
    def validate_fee(cls, value: int) -> int:
        if not 0 <= value <= 10000:
            raise ValueError("PROTOCOL_FEE_BP must be between 0 and 10000")
        return value


settings = Settings()
