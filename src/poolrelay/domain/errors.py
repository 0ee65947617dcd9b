"""Domain-specific exceptions.

Every relay error carries a stable ``reason`` code. The HTTP layer returns
that code to callers so they never see a generic failure.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for relay pipeline errors."""

    reason: str = "relay_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason)


class ClaimNotFound(RelayError):
    """Raised when a claim link lookup fails."""

    reason = "not_found"


class PayoutNotFound(RelayError):
    """Raised when a payout lookup fails."""

    reason = "not_found"


class ClaimExpired(RelayError):
    reason = "expired"


class AlreadyClaimed(RelayError):
    """Raised when a claim is no longer active or a concurrent caller won."""

    reason = "already_claimed"


class TooManyClaimAttempts(RelayError):
    reason = "too_many_attempts"


class InvalidAddress(RelayError):
    reason = "invalid_address"


class ComplianceBlocked(RelayError):
    """Terminal compliance rejection. Funds stay where they are."""

    reason = "blocked"

    def __init__(
        self,
        address: str,
        detail: Optional[str] = None,
        *,
        checked_live: bool = True,
    ):
        super().__init__(f"Address {address[:8]}... blocked: {detail or 'compliance'}")
        self.address = address
        self.detail = detail
        self.checked_live = checked_live


class InsufficientFunds(RelayError):
    reason = "insufficient_funds"

    def __init__(self, address: str, required: int, available: int):
        super().__init__(
            f"Address {address[:8]}... underfunded: has {available}, need {required}"
        )
        self.address = address
        self.required = required
        self.available = available


class IntegrityFault(RelayError):
    """Stored stealth seed does not reproduce the stored address.

    Fatal for the affected claim. Never retried.
    """

    reason = "integrity_fault"


class TransientLedgerError(RelayError):
    """Timeouts, transport failures and stale sequencing tokens."""

    reason = "ledger_unavailable"


class DepositVerificationError(RelayError):
    """The referenced hop-1 transaction does not prove the deposit."""

    reason = "deposit_not_verified"


class TerminalPayoutError(RelayError):
    """A completed, failed or blocked payout cannot be enqueued or retried."""

    reason = "payout_terminal"


class RetryBudgetExhausted(RelayError):
    reason = "retries_exhausted"


class ConcurrentModification(RelayError):
    """A compare-and-set lost against another writer."""

    reason = "concurrent_modification"
