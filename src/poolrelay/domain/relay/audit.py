"""Audit events emitted on every relay state transition."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AuditEventType(str, Enum):
    CLAIM_ISSUED = "claim_issued"
    CLAIM_EXPIRED = "claim_expired"
    CLAIM_PAID = "claim_paid"
    COMPLIANCE_PASSED = "compliance_passed"
    COMPLIANCE_BLOCKED = "compliance_blocked"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    PAYOUT_QUEUED = "payout_queued"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_FAILED = "payout_failed"
    PAYOUT_BLOCKED = "payout_blocked"
    INTEGRITY_FAULT = "integrity_fault"


class AuditEvent(BaseModel):
    event_type: AuditEventType
    subject_id: str
    amount: Optional[int] = None
    asset_id: Optional[str] = None
    tx_ref: Optional[str] = None
    timestamp: int
    detail: Optional[str] = None
