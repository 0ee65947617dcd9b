"""Test helpers for use case-based testing."""

from .claims import CLAIM_AMOUNT, USDC, ClaimAndDeposit, ConfirmedClaim, IssueFunded

__all__ = [
    "CLAIM_AMOUNT",
    "USDC",
    "ClaimAndDeposit",
    "ConfirmedClaim",
    "IssueFunded",
]
