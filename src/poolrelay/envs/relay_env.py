from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..crypto.stealth import load_signer_from_b58
from ..domain.relay.policy import RelayPolicy


class Settings(BaseModel):
    database_url: str

    api_host: str
    api_port: int
    api_debug: bool
    api_workers: int = Field(1, gt=0)
    api_cors_origins: list[str]

    app_name: str
    app_version: str

    pool_private_key: str = Field(..., repr=False)
    ledger_rpc_url: str
    compliance_base_url: str
    compliance_api_key: Optional[str] = Field(None, repr=False)
    compliance_timeout_seconds: float = Field(..., gt=0)

    claim_ttl_seconds: int = Field(..., gt=0)
    max_claim_attempts: int = Field(..., gt=0)
    max_retries: int = Field(..., gt=0)
    jitter_max_seconds: int = Field(..., ge=0)
    base_backoff_seconds: int = Field(..., ge=0)
    fee_buffer: int = Field(..., ge=0)
    native_reserve: int = Field(..., ge=0)
    confirmation_timeout_seconds: float = Field(..., gt=0)
    processing_lease_seconds: int = Field(..., gt=0)
    settlement_concurrency: int = Field(..., gt=0)
    sweep_interval_seconds: int = Field(..., gt=0)
    expiry_interval_seconds: int = Field(..., gt=0)
    scheduler_enabled: bool = True

    @field_validator("pool_private_key")
    @classmethod
    def validate_pool_private_key(cls, v: str) -> str:
        if not v:
            raise ValueError("Pool private key cannot be empty")
        try:
            load_signer_from_b58(v)
        except Exception as e:
            raise ValueError(f"Invalid pool private key: {e}") from e
        return v

    @model_validator(mode="after")
    def validate_processing_lease(self) -> "Settings":
        if self.processing_lease_seconds <= self.confirmation_timeout_seconds:
            raise ValueError(
                "Processing lease must outlast the confirmation timeout"
            )
        return self

    def relay_policy(self) -> RelayPolicy:
        return RelayPolicy(
            claim_ttl_ms=self.claim_ttl_seconds * 1000,
            max_claim_attempts=self.max_claim_attempts,
            max_retries=self.max_retries,
            jitter_max_ms=self.jitter_max_seconds * 1000,
            base_backoff_ms=self.base_backoff_seconds * 1000,
            fee_buffer=self.fee_buffer,
            native_reserve=self.native_reserve,
            confirmation_timeout_s=self.confirmation_timeout_seconds,
            processing_lease_ms=self.processing_lease_seconds * 1000,
            settlement_concurrency=self.settlement_concurrency,
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    return value.lower() == "true" if value is not None else default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value is not None else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value is not None else default


def get_settings() -> Settings:
    api_cors_origins_str = os.environ.get("RELAY_API_CORS_ORIGINS")

    return Settings(
        database_url=os.environ.get("RELAY_DATABASE_URL", "redis://localhost:6379/0"),
        api_host=os.environ.get("RELAY_API_HOST", "0.0.0.0"),
        api_port=_env_int("RELAY_API_PORT", 8000),
        api_debug=_env_bool("RELAY_API_DEBUG", False),
        api_workers=_env_int("RELAY_API_WORKERS", 1),
        api_cors_origins=api_cors_origins_str.split(",")
        if api_cors_origins_str is not None
        else [],
        app_name=os.environ.get("RELAY_APP_NAME", "PoolRelay"),
        app_version=os.environ.get("RELAY_APP_VERSION", "0.1.0"),
        pool_private_key=os.environ.get("RELAY_POOL_PRIVATE_KEY"),
        ledger_rpc_url=os.environ.get("RELAY_LEDGER_RPC_URL", "http://localhost:8899"),
        compliance_base_url=os.environ.get(
            "RELAY_COMPLIANCE_BASE_URL", "https://api.range.org"
        ),
        compliance_api_key=os.environ.get("RELAY_COMPLIANCE_API_KEY"),
        compliance_timeout_seconds=_env_float("RELAY_COMPLIANCE_TIMEOUT_SECONDS", 5.0),
        claim_ttl_seconds=_env_int("RELAY_CLAIM_TTL_SECONDS", 900),
        max_claim_attempts=_env_int("RELAY_MAX_CLAIM_ATTEMPTS", 5),
        max_retries=_env_int("RELAY_MAX_RETRIES", 3),
        jitter_max_seconds=_env_int("RELAY_JITTER_MAX_SECONDS", 300),
        base_backoff_seconds=_env_int("RELAY_BASE_BACKOFF_SECONDS", 60),
        fee_buffer=_env_int("RELAY_FEE_BUFFER", 5000),
        native_reserve=_env_int("RELAY_NATIVE_RESERVE", 0),
        confirmation_timeout_seconds=_env_float(
            "RELAY_CONFIRMATION_TIMEOUT_SECONDS", 60.0
        ),
        processing_lease_seconds=_env_int("RELAY_PROCESSING_LEASE_SECONDS", 300),
        settlement_concurrency=_env_int("RELAY_SETTLEMENT_CONCURRENCY", 4),
        sweep_interval_seconds=_env_int("RELAY_SWEEP_INTERVAL_SECONDS", 300),
        expiry_interval_seconds=_env_int("RELAY_EXPIRY_INTERVAL_SECONDS", 60),
        scheduler_enabled=_env_bool("RELAY_SCHEDULER_ENABLED", True),
    )
