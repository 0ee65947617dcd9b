"""Relay tuning knobs handed to the application services."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RelayPolicy(BaseModel):
    """Configured limits and delays. Built from settings, never hard-coded."""

    claim_ttl_ms: int = Field(..., gt=0)
    max_claim_attempts: int = Field(..., gt=0)
    max_retries: int = Field(..., gt=0)
    jitter_max_ms: int = Field(..., ge=0)
    base_backoff_ms: int = Field(..., ge=0)
    fee_buffer: int = Field(..., ge=0)
    native_reserve: int = Field(0, ge=0)
    confirmation_timeout_s: float = Field(..., gt=0)
    processing_lease_ms: int = Field(300_000, gt=0)
    settlement_concurrency: int = Field(4, gt=0)
