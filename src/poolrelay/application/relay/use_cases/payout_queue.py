"""Durable queue of hop-2 payouts."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from ....domain.errors import (
    ConcurrentModification,
    PayoutNotFound,
    RetryBudgetExhausted,
    TerminalPayoutError,
)
from ....domain.relay.audit import AuditEvent, AuditEventType
from ....domain.relay.entities import (
    PayoutStatus,
    RelayPayout,
    TERMINAL_PAYOUT_STATUSES,
)
from ....domain.relay.policy import RelayPolicy
from ....domain.relay.repositories import PayoutRepository
from ....domain.shared import AuditEmitterProtocol, Clock
from ..validators import next_scheduled_for

logger = logging.getLogger(__name__)

_FINAL_EVENTS = {
    PayoutStatus.COMPLETED: AuditEventType.PAYOUT_COMPLETED,
    PayoutStatus.FAILED: AuditEventType.PAYOUT_FAILED,
    PayoutStatus.BLOCKED: AuditEventType.PAYOUT_BLOCKED,
}


class PayoutQueue:
    """Service for enqueueing, rescheduling and finalizing payouts.

    Every state change is a version compare-and-set. Terminal payouts are
    immutable and are never re-enqueued.
    """

    def __init__(
        self,
        payout_repository: PayoutRepository,
        audit: AuditEmitterProtocol,
        clock: Clock,
        policy: RelayPolicy,
    ):
        self.payout_repository = payout_repository
        self.audit = audit
        self.clock = clock
        self.policy = policy

    async def _save(self, payout: RelayPayout, expected_version: int) -> RelayPayout:
        code, stored = await self.payout_repository.save_if_version(
            payout, expected_version
        )
        if code == 1 and stored is not None:
            return stored
        if code == 0:
            raise ConcurrentModification(f"Payout {payout.id} changed concurrently")
        raise PayoutNotFound(f"Payout {payout.id} not found")

    async def _emit(
        self, event_type: AuditEventType, payout: RelayPayout, detail: Optional[str] = None
    ) -> None:
        await self.audit.emit(
            AuditEvent(
                event_type=event_type,
                subject_id=str(payout.id),
                amount=payout.delivered_amount or payout.amount,
                asset_id=payout.asset_id,
                tx_ref=payout.settlement_tx_ref,
                timestamp=self.clock.now_ms(),
                detail=detail,
            )
        )

    async def enqueue(self, payout: RelayPayout, scheduled_for: int) -> RelayPayout:
        """Queue a payout. Re-enqueueing a live id returns the stored entry unchanged."""
        existing = await self.payout_repository.get_by_id(payout.id)
        if existing is not None:
            if existing.is_terminal:
                raise TerminalPayoutError(
                    f"Payout {payout.id} is already {existing.status.value}"
                )
            return existing

        candidate = payout.model_copy(
            update={
                "status": PayoutStatus.QUEUED,
                "scheduled_for": scheduled_for,
                "attempts": 0,
            }
        )
        code, stored = await self.payout_repository.create_if_absent(candidate)
        if code == 0:
            if stored.is_terminal:
                raise TerminalPayoutError(
                    f"Payout {payout.id} is already {stored.status.value}"
                )
            return stored

        logger.info("Queued payout %s for %s", stored.id, stored.scheduled_for)
        await self._emit(AuditEventType.PAYOUT_QUEUED, stored)
        return stored

    async def get(self, payout_id: UUID) -> Optional[RelayPayout]:
        return await self.payout_repository.get_by_id(payout_id)

    async def due_before(self, timestamp_ms: int) -> List[RelayPayout]:
        return await self.payout_repository.list_queued_due(timestamp_ms)

    async def list_by_status(
        self, status: PayoutStatus, limit: int = 100
    ) -> List[RelayPayout]:
        return await self.payout_repository.list_by_status(status, limit)

    async def expired_leases(self, timestamp_ms: int) -> List[RelayPayout]:
        return await self.payout_repository.list_processing_expired(timestamp_ms)

    async def mark_processing(self, payout: RelayPayout) -> RelayPayout:
        """Take the payout for settlement under a lease of ``processing_lease_ms``."""
        if payout.status != PayoutStatus.QUEUED:
            raise ConcurrentModification(
                f"Payout {payout.id} is {payout.status.value}, not queued"
            )
        updated = payout.model_copy(
            update={
                "status": PayoutStatus.PROCESSING,
                "processing_until": self.clock.now_ms() + self.policy.processing_lease_ms,
            }
        )
        return await self._save(updated, payout.version)

    async def record_submission(
        self,
        payout: RelayPayout,
        tx_ref: str,
        *,
        delivered_amount: Optional[int] = None,
    ) -> RelayPayout:
        """Persist a submitted tx_ref before anyone waits on it."""
        update: dict = {"submitted_tx_refs": [*payout.submitted_tx_refs, tx_ref]}
        if delivered_amount is not None:
            update["delivered_amount"] = delivered_amount
        updated = payout.model_copy(update=update)
        return await self._save(updated, payout.version)

    async def retry(self, payout: RelayPayout, error: str, delay_ms: int) -> RelayPayout:
        """Requeue after a failed attempt, ``delay_ms`` from now at the earliest."""
        if payout.is_terminal:
            raise TerminalPayoutError(
                f"Payout {payout.id} is already {payout.status.value}"
            )
        attempts = payout.attempts + 1
        if attempts >= self.policy.max_retries:
            raise RetryBudgetExhausted(
                f"Payout {payout.id} exhausted {self.policy.max_retries} attempts"
            )

        updated = payout.model_copy(
            update={
                "status": PayoutStatus.QUEUED,
                "attempts": attempts,
                "last_error": error,
                "scheduled_for": next_scheduled_for(
                    payout.scheduled_for, self.clock.now_ms(), delay_ms
                ),
                "processing_until": None,
            }
        )
        stored = await self._save(updated, payout.version)
        logger.info(
            "Payout %s retry %d scheduled for %s", stored.id, attempts, stored.scheduled_for
        )
        return stored

    async def requeue_interrupted(self, payout: RelayPayout) -> RelayPayout:
        """Put a payout left in ``processing`` by a dead worker back in the queue.

        Raises ConcurrentModification while its lease is still running: the
        worker holding it may have a transfer in flight.
        """
        if payout.status != PayoutStatus.PROCESSING:
            return payout
        if (payout.processing_until or 0) >= self.clock.now_ms():
            raise ConcurrentModification(
                f"Payout {payout.id} is leased until {payout.processing_until}"
            )
        updated = payout.model_copy(
            update={"status": PayoutStatus.QUEUED, "processing_until": None}
        )
        return await self._save(updated, payout.version)

    async def finalize(
        self,
        payout: RelayPayout,
        status: PayoutStatus,
        *,
        tx_ref: Optional[str] = None,
        error: Optional[str] = None,
        delivered_amount: Optional[int] = None,
        attempts: Optional[int] = None,
    ) -> RelayPayout:
        if status not in TERMINAL_PAYOUT_STATUSES:
            raise ValueError(f"{status.value} is not a terminal payout status")
        if payout.is_terminal:
            if payout.status == status:
                return payout
            raise TerminalPayoutError(
                f"Payout {payout.id} is already {payout.status.value}"
            )

        update: dict = {"status": status, "processing_until": None}
        if tx_ref is not None:
            update["settlement_tx_ref"] = tx_ref
        if error is not None:
            update["last_error"] = error
        if delivered_amount is not None:
            update["delivered_amount"] = delivered_amount
        if attempts is not None:
            update["attempts"] = attempts
        if status == PayoutStatus.COMPLETED:
            update["completed_at"] = self.clock.now_ms()

        stored = await self._save(payout.model_copy(update=update), payout.version)
        await self._emit(_FINAL_EVENTS[status], stored, detail=error)
        return stored
