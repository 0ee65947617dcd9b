"""Periodic hop-2 settlement from the pool to recipients."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from ....crypto.stealth import Ed25519Signer
from ....crypto.transactions import serialize_transfer, sign_transfer, transfer_ref
from ....domain.errors import (
    ConcurrentModification,
    InsufficientFunds,
    RelayError,
    TerminalPayoutError,
    TransientLedgerError,
)
from ....domain.relay.audit import AuditEvent, AuditEventType
from ....domain.relay.entities import PayoutStatus, RelayPayout
from ....domain.relay.policy import RelayPolicy
from ....domain.shared import (
    AuditEmitterProtocol,
    Clock,
    ComplianceGateProtocol,
    LedgerProtocol,
    LedgerTransaction,
    OperatorAlertsProtocol,
)
from ..dtos import SweepReport
from ..validators import compute_backoff_ms
from .claim_registry import ClaimRegistry
from .payout_queue import PayoutQueue
from .transaction_builder import RelayTransactionBuilder

logger = logging.getLogger(__name__)


class SettlementOutcome(str, Enum):
    COMPLETED = "completed"
    RETRIED = "retried"
    FAILED = "failed"
    BLOCKED = "blocked"
    SKIPPED = "skipped"
    ERROR = "error"


class BatchSettlementWorker:
    """Settles due payouts from the pool.

    One sweep runs at a time. Within a sweep payouts settle concurrently up
    to ``settlement_concurrency``; a failure in one never affects another.
    Pool signing and submission are serialized so each transfer carries a
    fresh sequencing token.

    A payout is settled under a lease stored on it (``processing_until``).
    Only payouts whose lease has run out are requeued, so another process
    restarting never takes over a transfer that may still be in flight.

    A transfer's tx_ref is persisted before it is submitted. Before touching
    the ledger again for a payout, every tx_ref ever recorded for it is
    looked up. A timeout never proves a transfer did not land, so a landed
    one completes the payout instead of being paid twice.
    """

    def __init__(
        self,
        payout_queue: PayoutQueue,
        builder: RelayTransactionBuilder,
        compliance: ComplianceGateProtocol,
        ledger: LedgerProtocol,
        pool_signer: Ed25519Signer,
        audit: AuditEmitterProtocol,
        alerts: OperatorAlertsProtocol,
        clock: Clock,
        policy: RelayPolicy,
        *,
        claim_registry: Optional[ClaimRegistry] = None,
    ):
        self.payout_queue = payout_queue
        self.builder = builder
        self.compliance = compliance
        self.ledger = ledger
        self.pool_signer = pool_signer
        self.audit = audit
        self.alerts = alerts
        self.clock = clock
        self.policy = policy
        self.claim_registry = claim_registry
        self._sweep_lock = asyncio.Lock()
        self._signer_lock = asyncio.Lock()

    async def run_once(self) -> SweepReport:
        if self._sweep_lock.locked():
            logger.info("Settlement sweep already running; skipping")
            return SweepReport(skipped=True)

        async with self._sweep_lock:
            await self._requeue_expired_leases()
            due = await self.payout_queue.due_before(self.clock.now_ms())
            report = SweepReport(due=len(due))
            if not due:
                return report

            semaphore = asyncio.Semaphore(self.policy.settlement_concurrency)

            async def _guarded(payout: RelayPayout) -> SettlementOutcome:
                async with semaphore:
                    return await self._settle_isolated(payout)

            outcomes = await asyncio.gather(*(_guarded(p) for p in due))

        for outcome in outcomes:
            if outcome == SettlementOutcome.COMPLETED:
                report.completed += 1
            elif outcome == SettlementOutcome.RETRIED:
                report.retried += 1
            elif outcome == SettlementOutcome.FAILED:
                report.failed += 1
            elif outcome == SettlementOutcome.BLOCKED:
                report.blocked += 1
            elif outcome == SettlementOutcome.ERROR:
                report.errors += 1
        logger.info("Settlement sweep finished: %s", report.model_dump())
        return report

    async def _settle_isolated(self, payout: RelayPayout) -> SettlementOutcome:
        try:
            return await self.settle(payout)
        except Exception:
            logger.exception("Unexpected error settling payout %s", payout.id)
            return SettlementOutcome.ERROR

    async def recover_interrupted(self) -> int:
        """Requeue payouts whose settling worker died and whose lease ran out."""
        async with self._sweep_lock:
            return await self._requeue_expired_leases()

    async def _requeue_expired_leases(self) -> int:
        recovered = 0
        for payout in await self.payout_queue.expired_leases(self.clock.now_ms()):
            try:
                await self.payout_queue.requeue_interrupted(payout)
            except ConcurrentModification:
                logger.info("Payout %s moved on before it could be requeued", payout.id)
                continue
            recovered += 1
        if recovered:
            logger.warning("Requeued %d interrupted payouts", recovered)
        return recovered

    async def settle(self, payout: RelayPayout) -> SettlementOutcome:
        try:
            landed = await self._find_landed_submission(payout)
        except TransientLedgerError as e:
            return await self._handle_failure(payout, e)
        if landed is not None:
            logger.info(
                "Payout %s already landed as %s; completing", payout.id, landed.tx_ref
            )
            return await self._complete(payout, landed.tx_ref)

        result = await self.compliance.screen(payout.recipient_address)
        if not result.passed:
            detail = result.reason or "compliance"
            await self._emit(AuditEventType.COMPLIANCE_BLOCKED, payout, detail)
            await self.payout_queue.finalize(payout, PayoutStatus.BLOCKED, error=detail)
            kind = "compliance_blocked" if result.checked_live else "compliance_unreachable"
            self.alerts.alert(kind, str(payout.id), f"payout recipient {detail}")
            return SettlementOutcome.BLOCKED
        await self._emit(AuditEventType.COMPLIANCE_PASSED, payout)

        try:
            processing = await self.payout_queue.mark_processing(payout)
        except ConcurrentModification:
            logger.info("Payout %s claimed by another worker; skipping", payout.id)
            return SettlementOutcome.SKIPPED

        try:
            return await self._submit_and_confirm(processing)
        except ConcurrentModification:
            logger.warning("Payout %s lost its lease before submission", payout.id)
            return SettlementOutcome.SKIPPED
        except InsufficientFunds as e:
            current = await self._current(processing)
            await self.payout_queue.finalize(
                current, PayoutStatus.FAILED, error=str(e), attempts=current.attempts + 1
            )
            self.alerts.alert("insufficient_funds", str(payout.id), str(e))
            return SettlementOutcome.FAILED
        except RelayError as e:
            return await self._handle_failure(await self._current(processing), e)
        except Exception as e:
            logger.exception("Unexpected error submitting payout %s", payout.id)
            return await self._handle_failure(await self._current(processing), e)

    async def _submit_and_confirm(self, payout: RelayPayout) -> SettlementOutcome:
        pool = self.pool_signer.address
        transfer = await self.builder.build_transfer(
            pool,
            payout.recipient_address,
            payout.amount,
            payout.asset_id,
            fee_payer=pool,
            keep_alive=True,
        )

        async with self._signer_lock:
            token = await self.ledger.latest_sequencing_token()
            fresh = transfer.with_sequencing_token(token)
            signed = sign_transfer(fresh, self.pool_signer)
            tx_ref = transfer_ref(signed)
            # Recorded first: a submit whose reply is lost may still land.
            payout = await self.payout_queue.record_submission(
                payout, tx_ref, delivered_amount=fresh.delivered_amount
            )
            accepted = await self.ledger.submit(serialize_transfer(signed))
        if accepted != tx_ref:
            logger.warning(
                "Ledger returned %s for payout %s, expected %s", accepted, payout.id, tx_ref
            )
            payout = await self.payout_queue.record_submission(payout, accepted)
            tx_ref = accepted

        try:
            tx = await asyncio.wait_for(
                self.ledger.wait_for_confirmation(tx_ref),
                timeout=self.policy.confirmation_timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise TransientLedgerError(f"Confirmation timed out for {tx_ref}") from e
        if not tx.succeeded:
            raise TransientLedgerError(f"Transfer {tx_ref} failed: {tx.error or 'unknown'}")

        return await self._complete(payout, tx_ref)

    async def _complete(self, payout: RelayPayout, tx_ref: str) -> SettlementOutcome:
        completed = await self.payout_queue.finalize(
            payout,
            PayoutStatus.COMPLETED,
            tx_ref=tx_ref,
            delivered_amount=payout.delivered_amount,
        )
        await self._complete_parent(completed)
        return SettlementOutcome.COMPLETED

    async def _current(self, payout: RelayPayout) -> RelayPayout:
        """Re-read so failure handling sees recorded submissions."""
        return await self.payout_queue.get(payout.id) or payout

    async def _find_landed_submission(
        self, payout: RelayPayout
    ) -> Optional[LedgerTransaction]:
        for tx_ref in payout.submitted_tx_refs:
            tx = await self.ledger.get_transaction(tx_ref)
            if tx is not None and tx.succeeded:
                return tx
        return None

    async def _handle_failure(
        self, payout: RelayPayout, error: Exception
    ) -> SettlementOutcome:
        attempts = payout.attempts + 1
        logger.warning("Payout %s attempt %d failed: %s", payout.id, attempts, error)

        if attempts >= self.policy.max_retries:
            if payout.submitted_tx_refs:
                try:
                    landed = await self._find_landed_submission(payout)
                except TransientLedgerError:
                    landed = None
                if landed is not None:
                    return await self._complete(payout, landed.tx_ref)
            await self.payout_queue.finalize(
                payout, PayoutStatus.FAILED, error=str(error), attempts=attempts
            )
            self.alerts.alert(
                "payout_failed",
                str(payout.id),
                f"gave up after {attempts} attempts: {error}; "
                f"submitted {payout.submitted_tx_refs or 'nothing'}",
            )
            return SettlementOutcome.FAILED

        backoff_ms = compute_backoff_ms(attempts, self.policy.base_backoff_ms)
        try:
            await self.payout_queue.retry(payout, str(error), backoff_ms)
        except TerminalPayoutError:
            logger.warning("Payout %s became terminal before retry", payout.id)
            return SettlementOutcome.SKIPPED
        return SettlementOutcome.RETRIED

    async def _complete_parent(self, payout: RelayPayout) -> None:
        if not payout.parent_claim_id or self.claim_registry is None:
            return
        try:
            await self.claim_registry.complete_payout(
                payout.parent_claim_id, payout.settlement_tx_ref or ""
            )
        except RelayError:
            logger.exception(
                "Payout %s settled but claim %s could not be marked paid",
                payout.id,
                payout.parent_claim_id,
            )

    async def _emit(
        self, event_type: AuditEventType, payout: RelayPayout, detail: Optional[str] = None
    ) -> None:
        await self.audit.emit(
            AuditEvent(
                event_type=event_type,
                subject_id=str(payout.id),
                amount=payout.amount,
                asset_id=payout.asset_id,
                timestamp=self.clock.now_ms(),
                detail=detail,
            )
        )
