"""Shared pytest fixtures for relay tests."""

from __future__ import annotations

import os
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio

from poolrelay.application.relay.use_cases.claim_registry import ClaimRegistry
from poolrelay.application.relay.use_cases.direct_send import DirectSendService
from poolrelay.application.relay.use_cases.payout_queue import PayoutQueue
from poolrelay.application.relay.use_cases.settlement_worker import (
    BatchSettlementWorker,
)
from poolrelay.application.relay.use_cases.transaction_builder import (
    RelayTransactionBuilder,
)
from poolrelay.crypto.stealth import Ed25519Signer
from poolrelay.domain.relay.policy import RelayPolicy
from poolrelay.infrastructure.compliance.http_gate import FailClosedComplianceGate
from poolrelay.infrastructure.database import DatabaseClient
from poolrelay.infrastructure.storage import RedisKeyValueStore
from tests.fixtures import (
    FakeClock,
    FakeComplianceGate,
    FakeLedger,
    InMemoryClaimRepository,
    InMemoryDepositIntentRepository,
    InMemoryDepositReceiptRepository,
    InMemoryKeyValueStore,
    InMemoryPayoutRepository,
    RecordingAlerts,
    RecordingAuditEmitter,
    new_signer,
    register_relay_scripts,
)


@pytest.fixture
def signer_factory() -> Callable[[], Ed25519Signer]:
    return new_signer


@pytest.fixture
def pool_signer() -> Ed25519Signer:
    return new_signer()


@pytest.fixture
def claimer_signer() -> Ed25519Signer:
    return new_signer()


@pytest.fixture
def policy() -> RelayPolicy:
    return RelayPolicy(
        claim_ttl_ms=15 * 60 * 1000,
        max_claim_attempts=3,
        max_retries=3,
        jitter_max_ms=0,
        base_backoff_ms=1000,
        fee_buffer=5000,
        native_reserve=0,
        confirmation_timeout_s=0.05,
        settlement_concurrency=4,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def compliance() -> FakeComplianceGate:
    return FakeComplianceGate()


@pytest.fixture
def compliance_gate(compliance: FakeComplianceGate) -> FailClosedComplianceGate:
    return FailClosedComplianceGate(compliance, timeout_s=0.5)


@pytest.fixture
def audit() -> RecordingAuditEmitter:
    return RecordingAuditEmitter()


@pytest.fixture
def alerts() -> RecordingAlerts:
    return RecordingAlerts()


@pytest_asyncio.fixture
async def store() -> AsyncGenerator[InMemoryKeyValueStore, None]:
    """One in-memory store shared by every relay repository in a test."""
    kv = InMemoryKeyValueStore()
    await register_relay_scripts(kv)
    yield kv
    kv.clear()


@pytest.fixture
def claim_repository(store: InMemoryKeyValueStore) -> InMemoryClaimRepository:
    return InMemoryClaimRepository(store)


@pytest.fixture
def payout_repository(store: InMemoryKeyValueStore) -> InMemoryPayoutRepository:
    return InMemoryPayoutRepository(store)


@pytest.fixture
def deposit_receipts(
    store: InMemoryKeyValueStore,
) -> InMemoryDepositReceiptRepository:
    return InMemoryDepositReceiptRepository(store)


@pytest.fixture
def deposit_intents(store: InMemoryKeyValueStore) -> InMemoryDepositIntentRepository:
    return InMemoryDepositIntentRepository(store)


@pytest.fixture
def builder(ledger: FakeLedger, policy: RelayPolicy) -> RelayTransactionBuilder:
    return RelayTransactionBuilder(ledger, policy)


@pytest.fixture
def payout_queue(
    payout_repository: InMemoryPayoutRepository,
    audit: RecordingAuditEmitter,
    clock: FakeClock,
    policy: RelayPolicy,
) -> PayoutQueue:
    return PayoutQueue(payout_repository, audit, clock, policy)


@pytest.fixture
def claim_registry(
    claim_repository: InMemoryClaimRepository,
    deposit_receipts: InMemoryDepositReceiptRepository,
    payout_queue: PayoutQueue,
    builder: RelayTransactionBuilder,
    compliance_gate: FailClosedComplianceGate,
    ledger: FakeLedger,
    audit: RecordingAuditEmitter,
    alerts: RecordingAlerts,
    clock: FakeClock,
    policy: RelayPolicy,
    pool_signer: Ed25519Signer,
) -> ClaimRegistry:
    return ClaimRegistry(
        claim_repository,
        deposit_receipts,
        payout_queue,
        builder,
        compliance_gate,
        ledger,
        audit,
        alerts,
        clock,
        policy,
        pool_signer.address,
    )


@pytest.fixture
def direct_send(
    payout_queue: PayoutQueue,
    deposit_receipts: InMemoryDepositReceiptRepository,
    deposit_intents: InMemoryDepositIntentRepository,
    builder: RelayTransactionBuilder,
    compliance_gate: FailClosedComplianceGate,
    ledger: FakeLedger,
    audit: RecordingAuditEmitter,
    alerts: RecordingAlerts,
    clock: FakeClock,
    policy: RelayPolicy,
    pool_signer: Ed25519Signer,
) -> DirectSendService:
    return DirectSendService(
        payout_queue,
        deposit_receipts,
        deposit_intents,
        builder,
        compliance_gate,
        ledger,
        audit,
        alerts,
        clock,
        policy,
        pool_signer.address,
    )


@pytest.fixture
def settlement_worker(
    payout_queue: PayoutQueue,
    builder: RelayTransactionBuilder,
    compliance_gate: FailClosedComplianceGate,
    ledger: FakeLedger,
    pool_signer: Ed25519Signer,
    audit: RecordingAuditEmitter,
    alerts: RecordingAlerts,
    clock: FakeClock,
    policy: RelayPolicy,
    claim_registry: ClaimRegistry,
) -> BatchSettlementWorker:
    return BatchSettlementWorker(
        payout_queue,
        builder,
        compliance_gate,
        ledger,
        pool_signer,
        audit,
        alerts,
        clock,
        policy,
        claim_registry=claim_registry,
    )


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest_asyncio.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Redis client on database 15 (or TEST_REDIS_URL). Skips when Redis is down."""
    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    client = DatabaseClient(TestDatabaseSettings(database_url=test_redis_url))
    client.initialize_database()

    try:
        async with client.get_connection() as conn:
            await conn.ping()
    except Exception as e:
        await client.close()
        pytest.skip(f"Redis not available: {e}")

    yield client

    async with client.get_connection() as conn:
        await conn.flushdb()
    await client.close()


@pytest_asyncio.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store for testing."""
    return RedisKeyValueStore(redis_db_client)
