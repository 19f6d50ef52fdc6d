"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
The ledger signing key has no default and is never read from anywhere else.
"""

import json
from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Tally"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - loaded from environment

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    # Authentication (creator tokens are issued by an external identity service)
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "tally-auth"
    JWT_AUDIENCE: str = "tally-api"

    # Azure Cosmos DB
    AZURE_COSMOS_ENDPOINT: str | None = None
    AZURE_COSMOS_CONNECTION_STRING: str | None = None  # For local emulator only
    AZURE_COSMOS_DATABASE: str = "tally"
    AZURE_COSMOS_DISABLE_SSL: bool = False

    # Field-Level Encryption
    # Base64-encoded 256-bit AES key for voter secrets and emails
    FIELD_ENCRYPTION_KEY: str | None = None

    # Elections
    MIN_ELECTION_DURATION_SECONDS: int = 3600
    # True: start date may be today (UTC). False: start time must be strictly in the future.
    ALLOW_SAME_DAY_START: bool = True
    VOTER_SECRET_LENGTH: int = 10
    VOTER_VERIFICATION_TOKEN_HOURS: int = 24
    MAX_VOTE_WEIGHT: int = 1000
    RESULTS_TEXT_SAMPLE_SIZE: int = 5

    # External ledger
    LEDGER_RPC_URL: str | None = None
    LEDGER_CHAIN_ID: int = 4202
    LEDGER_FACTORY_ADDRESS: str | None = None
    LEDGER_SIGNER_PRIVATE_KEY: str | None = None  # No fallback; paying calls fail without it
    DEPLOY_GAS_LIMIT: int = 3_000_000
    MIN_DEPLOY_GAS_LIMIT: int = 3_000_000
    MAX_PRIORITY_FEE_GWEI: float | None = None
    MAX_FEE_GWEI: float | None = None
    DEFAULT_PRIORITY_FEE_GWEI: float = 1.0
    DEFAULT_MAX_FEE_GWEI: float = 3.0
    VOTE_GAS_BUFFER_PERCENT: int = 20
    VOTER_REGISTRATION_BATCH_SIZE: int = 50
    LEDGER_CALL_TIMEOUT_SECONDS: float = 30.0
    LEDGER_RECEIPT_TIMEOUT_SECONDS: float = 180.0

    # Background election sweep
    ENABLE_ELECTION_SWEEP: bool = False
    ELECTION_SWEEP_INTERVAL_MINUTES: int = 5

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def ledger_configured(self) -> bool:
        """Whether enough ledger settings exist to talk to the chain."""
        return bool(self.LEDGER_RPC_URL and self.LEDGER_FACTORY_ADDRESS)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
