"""Data Transfer Objects for the relay application layer.

No DTO here carries a stealth seed or any signing material.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ...domain.relay.entities import (
    ClaimStatus,
    PayoutStatus,
    RelayClaim,
    RelayPayout,
    RiskLevel,
)


class IssueClaimDTO(BaseModel):
    """DTO for issuing a claim link."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount": 1500000000,
                "asset_id": "native",
                "asset_decimals": 9,
                "asset_symbol": "SOL",
            }
        }
    )

    amount: int = Field(..., gt=0)
    asset_id: str = Field(..., min_length=1)
    asset_decimals: int = Field(..., ge=0, le=18)
    asset_symbol: str = Field("", max_length=16)
    ttl_seconds: Optional[int] = Field(None, gt=0)


class IssuedClaimDTO(BaseModel):
    """Returned to the issuer: the link id plus the stealth address to fund."""

    link_id: str
    stealth_address: str
    amount: int
    asset_id: str
    display_amount: str
    status: ClaimStatus
    expires_at: int


class ClaimMetadataDTO(BaseModel):
    """Public view of a claim link."""

    link_id: str
    amount: int
    asset_id: str
    asset_decimals: int
    asset_symbol: str
    display_amount: str
    status: ClaimStatus
    expires_at: int

    @classmethod
    def from_claim(cls, claim: RelayClaim) -> "ClaimMetadataDTO":
        return cls(
            link_id=claim.link_id,
            amount=claim.amount,
            asset_id=claim.asset_id,
            asset_decimals=claim.asset_decimals,
            asset_symbol=claim.asset_symbol,
            display_amount=claim.display_amount,
            status=claim.status,
            expires_at=claim.expires_at,
        )


class ClaimBuildRequestDTO(BaseModel):
    claimer_address: str = Field(..., min_length=1)


class ClaimBuildResponseDTO(BaseModel):
    """Partially signed hop-1 transfer the claimer signs as fee payer and submits."""

    link_id: str
    transaction: str
    message: str
    fee_payer: str
    amount: int


class ConfirmDepositDTO(BaseModel):
    tx_ref: str = Field(..., min_length=1)


class ConfirmDepositResponseDTO(BaseModel):
    link_id: str
    status: ClaimStatus
    payout_id: UUID
    scheduled_for: int

    @field_serializer("payout_id")
    def serialize_payout_id(self, value: UUID) -> str:
        return str(value)


class DepositBuildDTO(BaseModel):
    """Ask for an unsigned hop-1 transfer from the sender's own address to the pool.

    The recipient is fixed here, inside the message the sender signs.
    """

    source_address: str = Field(..., min_length=1)
    recipient_address: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    asset_id: str = Field(..., min_length=1)
    asset_decimals: int = Field(..., ge=0, le=18)


class DepositBuildResponseDTO(BaseModel):
    intent_id: UUID
    transaction: str
    pool_address: str
    amount: int
    fee_buffer_withheld: int = 0

    @field_serializer("intent_id")
    def serialize_intent_id(self, value: UUID) -> str:
        return str(value)


class DirectSendDTO(BaseModel):
    """Request the hop-2 payout for a deposit built by ``build_deposit``."""

    intent_id: UUID
    deposit_tx_ref: str = Field(..., min_length=1)


class DirectSendResponseDTO(BaseModel):
    payout_id: UUID
    status: PayoutStatus
    scheduled_for: int

    @field_serializer("payout_id")
    def serialize_payout_id(self, value: UUID) -> str:
        return str(value)


class ScreenResponseDTO(BaseModel):
    address: str
    passed: bool
    reason: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    checked_live: bool = True


class PayoutStatusDTO(BaseModel):
    payout_id: UUID
    status: PayoutStatus
    amount: int
    asset_id: str
    delivered_amount: Optional[int] = None
    attempts: int
    scheduled_for: int
    settlement_tx_ref: Optional[str] = None
    last_error: Optional[str] = None
    completed_at: Optional[int] = None

    @field_serializer("payout_id")
    def serialize_payout_id(self, value: UUID) -> str:
        return str(value)

    @classmethod
    def from_payout(cls, payout: RelayPayout) -> "PayoutStatusDTO":
        return cls(
            payout_id=payout.id,
            status=payout.status,
            amount=payout.amount,
            asset_id=payout.asset_id,
            delivered_amount=payout.delivered_amount,
            attempts=payout.attempts,
            scheduled_for=payout.scheduled_for,
            settlement_tx_ref=payout.settlement_tx_ref,
            last_error=payout.last_error,
            completed_at=payout.completed_at,
        )


class SweepReport(BaseModel):
    """Outcome counts for one settlement sweep."""

    due: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    blocked: int = 0
    errors: int = 0
    skipped: bool = False
