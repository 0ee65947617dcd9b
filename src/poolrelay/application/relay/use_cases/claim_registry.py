"""Claim link lifecycle: issue, build hop-1, confirm the deposit, mark paid."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ....crypto.stealth import StealthAddressVault, StealthKeypair
from ....crypto.transactions import serialize_transfer, sign_transfer
from ....domain.errors import (
    AlreadyClaimed,
    ClaimExpired,
    ClaimNotFound,
    ComplianceBlocked,
    DepositVerificationError,
    IntegrityFault,
    TooManyClaimAttempts,
)
from ....domain.relay.audit import AuditEvent, AuditEventType
from ....domain.relay.entities import (
    ClaimStatus,
    RelayClaim,
    RelayPayout,
    format_display_amount,
    is_native_asset,
    payout_id_for_claim,
)
from ....domain.relay.policy import RelayPolicy
from ....domain.relay.repositories import ClaimRepository, DepositReceiptRepository
from ....domain.shared import (
    AuditEmitterProtocol,
    Clock,
    ComplianceGateProtocol,
    LedgerProtocol,
    OperatorAlertsProtocol,
)
from ..dtos import (
    ClaimBuildResponseDTO,
    ClaimMetadataDTO,
    ConfirmDepositResponseDTO,
    IssueClaimDTO,
    IssuedClaimDTO,
)
from ..validators import draw_jitter_ms, validate_address
from .deposits import bind_deposit, verify_pool_credit
from .payout_queue import PayoutQueue
from .transaction_builder import RelayTransactionBuilder

logger = logging.getLogger(__name__)


class ClaimRegistry:
    """Service for claim links.

    A claim moves active -> deposited -> confirmed -> paid, or active ->
    expired. Each move is a compare-and-set on the claim version; a caller
    that loses the race sees ``AlreadyClaimed``.
    """

    def __init__(
        self,
        claim_repository: ClaimRepository,
        deposit_receipts: DepositReceiptRepository,
        payout_queue: PayoutQueue,
        builder: RelayTransactionBuilder,
        compliance: ComplianceGateProtocol,
        ledger: LedgerProtocol,
        audit: AuditEmitterProtocol,
        alerts: OperatorAlertsProtocol,
        clock: Clock,
        policy: RelayPolicy,
        pool_address: str,
        *,
        vault: Optional[StealthAddressVault] = None,
        rng: Optional[Callable[[int], int]] = None,
    ):
        self.claim_repository = claim_repository
        self.deposit_receipts = deposit_receipts
        self.payout_queue = payout_queue
        self.builder = builder
        self.compliance = compliance
        self.ledger = ledger
        self.audit = audit
        self.alerts = alerts
        self.clock = clock
        self.policy = policy
        self.pool_address = pool_address
        self.vault = vault or StealthAddressVault()
        self._rng = rng

    async def _load(self, link_id: str) -> RelayClaim:
        claim = await self.claim_repository.get_by_link_id(link_id)
        if claim is None:
            raise ClaimNotFound(f"Claim {link_id} not found")
        return claim

    async def _save(self, claim: RelayClaim, expected_version: int) -> RelayClaim:
        code, stored = await self.claim_repository.save_if_version(
            claim, expected_version
        )
        if code == 1 and stored is not None:
            return stored
        if code == 0:
            raise AlreadyClaimed("Claim was modified by a concurrent request")
        raise ClaimNotFound(f"Claim {claim.link_id} not found")

    async def _emit(
        self,
        event_type: AuditEventType,
        claim: RelayClaim,
        *,
        tx_ref: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        await self.audit.emit(
            AuditEvent(
                event_type=event_type,
                subject_id=claim.link_id,
                amount=claim.amount,
                asset_id=claim.asset_id,
                tx_ref=tx_ref,
                timestamp=self.clock.now_ms(),
                detail=detail,
            )
        )

    async def issue(self, dto: IssueClaimDTO) -> IssuedClaimDTO:
        keypair, seed_b64 = self.vault.create()
        now = self.clock.now_ms()
        ttl_ms = dto.ttl_seconds * 1000 if dto.ttl_seconds else self.policy.claim_ttl_ms

        claim = RelayClaim(
            stealth_address=keypair.address,
            stealth_seed_b64=seed_b64,
            amount=dto.amount,
            asset_id=dto.asset_id,
            asset_decimals=dto.asset_decimals,
            asset_symbol=dto.asset_symbol,
            display_amount=format_display_amount(dto.amount, dto.asset_decimals),
            expires_at=now + ttl_ms,
            created_at=now,
        )
        claim = await self.claim_repository.create(claim)
        await self._emit(AuditEventType.CLAIM_ISSUED, claim)

        return IssuedClaimDTO(
            link_id=claim.link_id,
            stealth_address=claim.stealth_address,
            amount=claim.amount,
            asset_id=claim.asset_id,
            display_amount=claim.display_amount,
            status=claim.status,
            expires_at=claim.expires_at,
        )

    async def get_metadata(self, link_id: str) -> ClaimMetadataDTO:
        return ClaimMetadataDTO.from_claim(await self._load(link_id))

    async def _expire(self, claim: RelayClaim) -> RelayClaim:
        updated = claim.model_copy()
        updated.transition(ClaimStatus.EXPIRED)
        stored = await self._save(updated, claim.version)
        await self._emit(AuditEventType.CLAIM_EXPIRED, stored)
        return stored

    async def _reconstruct(self, claim: RelayClaim) -> StealthKeypair:
        try:
            return self.vault.reconstruct(claim.stealth_seed_b64, claim.stealth_address)
        except IntegrityFault as e:
            logger.error("Integrity fault on claim %s; halting it", claim.link_id)
            halted = claim.model_copy(update={"halted_reason": str(e)})
            try:
                await self._save(halted, claim.version)
            except (AlreadyClaimed, ClaimNotFound):
                logger.warning("Could not persist halt for claim %s", claim.link_id)
            await self._emit(AuditEventType.INTEGRITY_FAULT, claim, detail=str(e))
            self.alerts.alert("integrity_fault", claim.link_id, str(e))
            raise

    async def request_build(
        self, link_id: str, claimer_address: str
    ) -> ClaimBuildResponseDTO:
        """Hand the claimer a hop-1 transfer, partially signed by the stealth key."""
        claim = await self._load(link_id)

        if claim.halted_reason:
            raise IntegrityFault(claim.halted_reason)
        if claim.status == ClaimStatus.EXPIRED:
            raise ClaimExpired()
        if claim.status != ClaimStatus.ACTIVE:
            raise AlreadyClaimed(f"Claim is {claim.status.value}")

        now = self.clock.now_ms()
        if claim.is_expired_at(now):
            try:
                await self._expire(claim)
            except AlreadyClaimed:
                pass
            raise ClaimExpired()
        if claim.claim_attempts >= self.policy.max_claim_attempts:
            raise TooManyClaimAttempts()

        claimer = validate_address(claimer_address)
        keypair = await self._reconstruct(claim)

        result = await self.compliance.screen(claimer)
        if not result.passed:
            counted = claim.model_copy(update={"claim_attempts": claim.claim_attempts + 1})
            await self._save(counted, claim.version)
            detail = result.reason or "compliance"
            await self._emit(AuditEventType.COMPLIANCE_BLOCKED, claim, detail=detail)
            kind = "compliance_blocked" if result.checked_live else "compliance_unreachable"
            self.alerts.alert(kind, claim.link_id, f"claimer {claimer[:8]}... {detail}")
            raise ComplianceBlocked(claimer, detail, checked_live=result.checked_live)
        await self._emit(AuditEventType.COMPLIANCE_PASSED, claim)

        close_to = None if is_native_asset(claim.asset_id) else claimer
        transfer = await self.builder.build_transfer(
            claim.stealth_address,
            self.pool_address,
            claim.amount,
            claim.asset_id,
            fee_payer=claimer,
            close_source_to=close_to,
        )
        signed = sign_transfer(transfer, keypair.signer)

        updated = claim.model_copy(
            update={
                "claim_attempts": claim.claim_attempts + 1,
                "claimer_account": claimer,
                "claimed_at": now,
            }
        )
        updated.transition(ClaimStatus.DEPOSITED)
        await self._save(updated, claim.version)
        logger.info("Built hop-1 for claim %s", link_id)

        symbol = claim.asset_symbol or claim.asset_id
        return ClaimBuildResponseDTO(
            link_id=link_id,
            transaction=serialize_transfer(signed),
            message=f"Sign and submit to receive {claim.display_amount} {symbol}",
            fee_payer=claimer,
            amount=transfer.delivered_amount,
        )

    async def confirm_deposit(self, link_id: str, tx_ref: str) -> ConfirmDepositResponseDTO:
        """Verify hop-1 landed in the pool and queue the hop-2 payout."""
        claim = await self._load(link_id)

        if claim.status == ClaimStatus.CONFIRMED and claim.deposit_tx_ref == tx_ref:
            # Replay of a confirm that may have crashed before enqueueing.
            payout = await self.payout_queue.get(payout_id_for_claim(link_id))
            if payout is None:
                payout = await self._enqueue_payout(claim)
            return self._confirm_response(claim, payout)
        if claim.status == ClaimStatus.ACTIVE:
            raise DepositVerificationError("Claim has no pending deposit")
        if claim.status == ClaimStatus.EXPIRED:
            raise ClaimExpired()
        if claim.status != ClaimStatus.DEPOSITED:
            raise AlreadyClaimed(f"Claim is {claim.status.value}")

        await verify_pool_credit(
            self.ledger, tx_ref, self.pool_address, claim.asset_id, claim.amount
        )
        await bind_deposit(self.deposit_receipts, tx_ref, f"claim:{link_id}")

        updated = claim.model_copy(update={"deposit_tx_ref": tx_ref})
        updated.transition(ClaimStatus.CONFIRMED)
        stored = await self._save(updated, claim.version)
        await self._emit(AuditEventType.DEPOSIT_CONFIRMED, stored, tx_ref=tx_ref)

        payout = await self._enqueue_payout(stored)
        return self._confirm_response(stored, payout)

    async def _enqueue_payout(self, claim: RelayClaim) -> RelayPayout:
        assert claim.claimer_account is not None
        now = self.clock.now_ms()
        payout = RelayPayout(
            id=payout_id_for_claim(claim.link_id),
            recipient_address=claim.claimer_account,
            amount=claim.amount,
            asset_id=claim.asset_id,
            asset_decimals=claim.asset_decimals,
            parent_claim_id=claim.link_id,
            scheduled_for=now,
            created_at=now,
        )
        scheduled_for = now + draw_jitter_ms(self.policy.jitter_max_ms, self._rng)
        return await self.payout_queue.enqueue(payout, scheduled_for)

    @staticmethod
    def _confirm_response(
        claim: RelayClaim, payout: RelayPayout
    ) -> ConfirmDepositResponseDTO:
        return ConfirmDepositResponseDTO(
            link_id=claim.link_id,
            status=claim.status,
            payout_id=payout.id,
            scheduled_for=payout.scheduled_for,
        )

    async def complete_payout(self, link_id: str, tx_ref: str) -> RelayClaim:
        """Mark the claim paid once its payout settled. Idempotent."""
        claim = await self._load(link_id)
        if claim.status == ClaimStatus.PAID:
            return claim
        if claim.status != ClaimStatus.CONFIRMED:
            raise AlreadyClaimed(f"Claim is {claim.status.value}, cannot mark paid")

        updated = claim.model_copy(
            update={"payout_tx_ref": tx_ref, "paid_at": self.clock.now_ms()}
        )
        updated.transition(ClaimStatus.PAID)
        try:
            stored = await self._save(updated, claim.version)
        except AlreadyClaimed:
            current = await self._load(link_id)
            if current.status == ClaimStatus.PAID:
                return current
            raise
        await self._emit(AuditEventType.CLAIM_PAID, stored, tx_ref=tx_ref)
        return stored

    async def expire_sweep(self) -> int:
        """Expire every active claim past its deadline. Returns how many moved."""
        now = self.clock.now_ms()
        expired = 0
        for claim in await self.claim_repository.list_active_expiring_before(now):
            try:
                await self._expire(claim)
                expired += 1
            except AlreadyClaimed:
                logger.debug("Claim %s changed during expiry sweep", claim.link_id)
        if expired:
            logger.info("Expired %d claims", expired)
        return expired
