"""
Pydantic models for API requests and responses.

Field names are exposed in camelCase to match the frontend.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Claim
# ============================================================================

class ClaimRequest(_CamelModel):
    """Request to claim the faucet drip."""

    wallet_address: Optional[str] = Field(
        None,
        alias="walletAddress",
        description="Recipient wallet address (0x...)",
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"walletAddress": "0x1111111111111111111111111111111111111111"}
            ]
        },
    )


class ClaimResponse(_CamelModel):
    """Response to a claim."""

    success: bool = Field(..., description="Whether the drip was sent")
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")
    amount: Optional[str] = Field(None, description="Amount sent, in ETH")
    next_claim_time: Optional[datetime] = Field(None, alias="nextClaimTime")
    last_claim_time: Optional[datetime] = Field(None, alias="lastClaimTime")
    message: Optional[str] = Field(None, description="Human readable status")
    error: Optional[str] = Field(None, description="Error message if failed")


# ============================================================================
# Eligibility
# ============================================================================

class EligibilityResponse(_CamelModel):
    """Whether a wallet may claim right now."""

    eligible: bool = Field(..., description="Whether the wallet may claim")
    first_time: Optional[bool] = Field(None, alias="firstTime")
    last_claim_time: Optional[datetime] = Field(None, alias="lastClaimTime")
    next_claim_time: Optional[datetime] = Field(None, alias="nextClaimTime")
    time_remaining_ms: Optional[int] = Field(None, alias="timeRemainingMs")
    message: Optional[str] = Field(None, description="Human readable status")


class ErrorResponse(BaseModel):
    """Generic failure."""

    success: bool = False
    error: str


# ============================================================================
# Health Check
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="healthy or unhealthy")
    timestamp: datetime = Field(..., description="Server time (UTC)")
    database: Optional[str] = Field(None, description="Database connectivity")
    ethereum: Optional[str] = Field(None, description="EVM RPC connectivity")
    balance: Optional[str] = Field(None, description="Faucet balance")
    error: Optional[str] = Field(None, description="Error message if unhealthy")
