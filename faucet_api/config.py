"""
Configuration for the faucet API.
"""

from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Fixed disbursement policy
DRIP_AMOUNT_ETH = Decimal("0.01")
CLAIM_COOLDOWN = timedelta(hours=24)


class Settings(BaseSettings):
    """
    Faucet configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Server
    host: str = Field(default="127.0.0.1", description="API host")
    # Railway injects PORT env var
    port: int = Field(default=3000, description="API port", validation_alias="PORT")
    debug: bool = Field(default=False, description="Enable debug mode")
    allowed_origins: list[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
        description="CORS allowed origins"
    )

    # EVM
    rpc_url: str = Field(
        default="https://rpc.sepolia.org",
        description="EVM RPC URL (Sepolia testnet)"
    )
    chain_id: int = Field(default=11155111, description="EVM chain ID")
    private_key: Optional[str] = Field(
        default=None,
        description="Private key of the disbursing account"
    )
    rpc_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single RPC round trip"
    )
    confirmation_timeout_seconds: float = Field(
        default=120.0,
        description="How long to wait for a transfer to be mined"
    )
    low_balance_warning_eth: Decimal = Field(
        default=Decimal("0.1"),
        description="Warn at startup when the faucet balance is below this"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./faucet.db",
        description="SQLAlchemy database URL (sqlite:/// or postgresql://)"
    )

    # Reconciliation
    reconcile_interval_seconds: int = Field(
        default=300,
        description="Interval between reconciliation passes"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
