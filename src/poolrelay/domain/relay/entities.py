"""Relay domain entities: claims, payouts, deposit intents and screening results."""

from __future__ import annotations

import secrets
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, NAMESPACE_URL, uuid4, uuid5

from pydantic import BaseModel, Field, field_serializer


NATIVE_ASSET_ID = "native"
NATIVE_ASSET_IDS = frozenset(
    {NATIVE_ASSET_ID, "So11111111111111111111111111111111111111112"}
)


def is_native_asset(asset_id: str) -> bool:
    return asset_id in NATIVE_ASSET_IDS


def format_display_amount(amount: int, decimals: int) -> str:
    """Render base units as a human readable decimal string."""
    value = Decimal(amount).scaleb(-decimals)
    return format(value.normalize(), "f") if amount else "0"


def generate_link_id() -> str:
    """Return an opaque, URL-safe link id with 128 bits of entropy."""
    return secrets.token_urlsafe(16)


def payout_id_for_claim(link_id: str) -> UUID:
    """Deterministic payout id so a claim can only ever enqueue one payout."""
    return uuid5(NAMESPACE_URL, f"poolrelay:claim-payout:{link_id}")


def payout_id_for_deposit(deposit_tx_ref: str) -> UUID:
    """One deposit funds at most one direct-send payout."""
    return uuid5(NAMESPACE_URL, f"poolrelay:deposit-payout:{deposit_tx_ref}")


class ClaimStatus(str, Enum):
    ACTIVE = "active"
    DEPOSITED = "deposited"
    CONFIRMED = "confirmed"
    PAID = "paid"
    EXPIRED = "expired"


class PayoutStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


TERMINAL_CLAIM_STATUSES = frozenset({ClaimStatus.PAID, ClaimStatus.EXPIRED})
TERMINAL_PAYOUT_STATUSES = frozenset(
    {PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.BLOCKED}
)

# Forward-only claim lifecycle.
_CLAIM_TRANSITIONS: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.ACTIVE: frozenset({ClaimStatus.DEPOSITED, ClaimStatus.EXPIRED}),
    ClaimStatus.DEPOSITED: frozenset({ClaimStatus.CONFIRMED}),
    ClaimStatus.CONFIRMED: frozenset({ClaimStatus.PAID}),
    ClaimStatus.PAID: frozenset(),
    ClaimStatus.EXPIRED: frozenset(),
}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComplianceResult(BaseModel):
    """Outcome of a single address screen. Transient, never persisted."""

    passed: bool
    reason: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    checked_live: bool = True


class RelayClaim(BaseModel):
    """Shareable, time-boxed invitation to receive funds via hop-1."""

    id: UUID = Field(default_factory=uuid4)
    link_id: str = Field(default_factory=generate_link_id)
    stealth_address: str
    stealth_seed_b64: str = Field(..., repr=False)
    amount: int = Field(..., gt=0)
    asset_id: str
    asset_decimals: int = Field(..., ge=0)
    asset_symbol: str = ""
    display_amount: str = ""
    status: ClaimStatus = ClaimStatus.ACTIVE
    claim_attempts: int = 0
    claimer_account: Optional[str] = None
    deposit_tx_ref: Optional[str] = None
    payout_tx_ref: Optional[str] = None
    halted_reason: Optional[str] = None
    expires_at: int
    created_at: int
    claimed_at: Optional[int] = None
    paid_at: Optional[int] = None
    version: int = 0

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CLAIM_STATUSES

    def is_expired_at(self, now_ms: int) -> bool:
        return self.expires_at < now_ms

    def transition(self, new_status: ClaimStatus) -> None:
        """Advance the claim status, refusing any backwards or sideways move."""
        if new_status not in _CLAIM_TRANSITIONS[self.status]:
            raise ValueError(
                f"Illegal claim transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status


class RelayPayout(BaseModel):
    """One outbound hop-2 settlement obligation."""

    id: UUID = Field(default_factory=uuid4)
    recipient_address: str
    amount: int = Field(..., gt=0)
    asset_id: str
    asset_decimals: int = Field(..., ge=0)
    status: PayoutStatus = PayoutStatus.QUEUED
    scheduled_for: int
    attempts: int = 0
    last_error: Optional[str] = None
    settlement_tx_ref: Optional[str] = None
    submitted_tx_refs: list[str] = Field(default_factory=list)
    # Settling worker holds the payout until then; only afterwards may another requeue it.
    processing_until: Optional[int] = None
    delivered_amount: Optional[int] = None
    parent_claim_id: Optional[str] = None
    created_at: int
    completed_at: Optional[int] = None
    version: int = 0

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYOUT_STATUSES


class DepositIntent(BaseModel):
    """A direct-send deposit the relay built, waiting for its sender to submit it.

    ``message_b64`` holds the exact bytes the source signs. A hop-1 tx_ref is
    accepted for this intent only if it is the source's signature over them.
    """

    id: UUID = Field(default_factory=uuid4)
    source_address: str
    recipient_address: str
    amount: int = Field(..., gt=0)
    delivered_amount: int = Field(..., gt=0)
    asset_id: str
    asset_decimals: int = Field(..., ge=0)
    message_b64: str
    created_at: int

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)


def deposit_intent_memo(intent_id: UUID) -> str:
    return f"poolrelay:send:{intent_id}"
