"""FastAPI dependencies for the relay API."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from ...application.relay.use_cases.claim_registry import ClaimRegistry
from ...application.relay.use_cases.direct_send import DirectSendService
from ...application.relay.use_cases.payout_queue import PayoutQueue
from ...application.relay.use_cases.settlement_worker import BatchSettlementWorker
from ...application.relay.use_cases.transaction_builder import RelayTransactionBuilder
from ...crypto.stealth import load_signer_from_b58
from ...envs.relay_env import Settings
from ...infrastructure.audit.emitters import (
    CompositeAuditEmitter,
    LoggingAuditEmitter,
    OperatorAlerts,
    RedisAuditEmitter,
)
from ...infrastructure.clock import SystemClock
from ...infrastructure.compliance.http_gate import (
    FailClosedComplianceGate,
    HttpComplianceGate,
)
from ...infrastructure.database import DatabaseClient, get_database_client
from ...infrastructure.http.http_client import AsyncHttpClient
from ...infrastructure.ledger.rpc_client import JsonRpcLedgerClient
from ...infrastructure.relay.claim_repository_impl import ClaimRepositoryImpl
from ...infrastructure.relay.deposit_intent_repository_impl import (
    DepositIntentRepositoryImpl,
)
from ...infrastructure.relay.deposit_receipt_repository_impl import (
    DepositReceiptRepositoryImpl,
)
from ...infrastructure.relay.payout_repository_impl import PayoutRepositoryImpl
from ...infrastructure.scripts import RELAY_SCRIPTS
from ...infrastructure.storage import KeyValueStore, RedisKeyValueStore


@dataclass
class RelayContainer:
    """Process-wide services. Built once per worker process in the app lifespan."""

    store: KeyValueStore
    claim_registry: ClaimRegistry
    direct_send: DirectSendService
    payout_queue: PayoutQueue
    settlement_worker: BatchSettlementWorker
    db_client: DatabaseClient
    ledger: JsonRpcLedgerClient
    compliance_gate: HttpComplianceGate

    async def register_scripts(self) -> None:
        for name, script in RELAY_SCRIPTS.items():
            await self.store.register_script(name, script)

    async def aclose(self) -> None:
        await self.ledger.aclose()
        await self.compliance_gate.aclose()
        await self.db_client.close()


def build_relay_container(settings: Settings) -> RelayContainer:
    db_client = get_database_client(settings)
    store = RedisKeyValueStore(db_client)
    policy = settings.relay_policy()
    clock = SystemClock()
    pool_signer = load_signer_from_b58(settings.pool_private_key)

    ledger = JsonRpcLedgerClient(AsyncHttpClient(settings.ledger_rpc_url))
    headers = (
        {"Authorization": f"Bearer {settings.compliance_api_key}"}
        if settings.compliance_api_key
        else None
    )
    http_gate = HttpComplianceGate(
        AsyncHttpClient(
            settings.compliance_base_url,
            timeout=settings.compliance_timeout_seconds,
            headers=headers,
        )
    )
    compliance = FailClosedComplianceGate(
        http_gate, timeout_s=settings.compliance_timeout_seconds
    )
    audit = CompositeAuditEmitter([LoggingAuditEmitter(), RedisAuditEmitter(store)])
    alerts = OperatorAlerts()

    builder = RelayTransactionBuilder(ledger, policy)
    deposit_receipts = DepositReceiptRepositoryImpl(store)
    payout_queue = PayoutQueue(PayoutRepositoryImpl(store), audit, clock, policy)
    claim_registry = ClaimRegistry(
        ClaimRepositoryImpl(store),
        deposit_receipts,
        payout_queue,
        builder,
        compliance,
        ledger,
        audit,
        alerts,
        clock,
        policy,
        pool_signer.address,
    )
    direct_send = DirectSendService(
        payout_queue,
        deposit_receipts,
        DepositIntentRepositoryImpl(store),
        builder,
        compliance,
        ledger,
        audit,
        alerts,
        clock,
        policy,
        pool_signer.address,
    )
    worker = BatchSettlementWorker(
        payout_queue,
        builder,
        compliance,
        ledger,
        pool_signer,
        audit,
        alerts,
        clock,
        policy,
        claim_registry=claim_registry,
    )
    return RelayContainer(
        store=store,
        claim_registry=claim_registry,
        direct_send=direct_send,
        payout_queue=payout_queue,
        settlement_worker=worker,
        db_client=db_client,
        ledger=ledger,
        compliance_gate=http_gate,
    )


def get_container(request: Request) -> RelayContainer:
    return request.app.state.relay


def get_claim_registry(request: Request) -> ClaimRegistry:
    """Get claim registry."""
    return get_container(request).claim_registry


def get_direct_send_service(request: Request) -> DirectSendService:
    """Get direct send service."""
    return get_container(request).direct_send
