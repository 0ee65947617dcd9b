"""Direct sends: a sender deposits into the pool and names a recipient."""

from __future__ import annotations

import base64
import logging
from typing import Callable, Optional
from uuid import UUID, uuid4

from ....crypto.transactions import (
    SignedTransfer,
    is_signed_by,
    message_bytes,
    serialize_transfer,
)
from ....domain.errors import (
    ComplianceBlocked,
    DepositVerificationError,
    PayoutNotFound,
)
from ....domain.relay.audit import AuditEvent, AuditEventType
from ....domain.relay.entities import (
    DepositIntent,
    RelayPayout,
    deposit_intent_memo,
    payout_id_for_deposit,
)
from ....domain.relay.policy import RelayPolicy
from ....domain.relay.repositories import (
    DepositIntentRepository,
    DepositReceiptRepository,
)
from ....domain.shared import (
    AuditEmitterProtocol,
    Clock,
    ComplianceGateProtocol,
    LedgerProtocol,
    OperatorAlertsProtocol,
)
from ..dtos import (
    DepositBuildDTO,
    DepositBuildResponseDTO,
    DirectSendDTO,
    DirectSendResponseDTO,
    PayoutStatusDTO,
    ScreenResponseDTO,
)
from ..validators import draw_jitter_ms, validate_address
from .deposits import bind_deposit, verify_pool_credit
from .payout_queue import PayoutQueue
from .transaction_builder import RelayTransactionBuilder

logger = logging.getLogger(__name__)


class DirectSendService:
    """Service for sender-initiated relays without a claim link.

    ``build_deposit`` records an intent (source, recipient, amount) and tags
    the hop-1 message with its id. ``initiate`` accepts a tx_ref only if it
    is the source's signature over that exact message, so nobody else can
    attach their own recipient to someone else's deposit.
    """

    def __init__(
        self,
        payout_queue: PayoutQueue,
        deposit_receipts: DepositReceiptRepository,
        deposit_intents: DepositIntentRepository,
        builder: RelayTransactionBuilder,
        compliance: ComplianceGateProtocol,
        ledger: LedgerProtocol,
        audit: AuditEmitterProtocol,
        alerts: OperatorAlertsProtocol,
        clock: Clock,
        policy: RelayPolicy,
        pool_address: str,
        *,
        rng: Optional[Callable[[int], int]] = None,
    ):
        self.payout_queue = payout_queue
        self.deposit_receipts = deposit_receipts
        self.deposit_intents = deposit_intents
        self.builder = builder
        self.compliance = compliance
        self.ledger = ledger
        self.audit = audit
        self.alerts = alerts
        self.clock = clock
        self.policy = policy
        self.pool_address = pool_address
        self._rng = rng

    async def check_recipient(self, address: str) -> ScreenResponseDTO:
        """Inline screen so a sender learns about a blocked recipient up front."""
        recipient = validate_address(address)
        result = await self.compliance.screen(recipient)
        return ScreenResponseDTO(
            address=recipient,
            passed=result.passed,
            reason=result.reason,
            risk_level=result.risk_level,
            checked_live=result.checked_live,
        )

    async def build_deposit(self, dto: DepositBuildDTO) -> DepositBuildResponseDTO:
        """Unsigned hop-1 from the sender to the pool; the sender pays its own fee."""
        source = validate_address(dto.source_address)
        recipient = validate_address(dto.recipient_address)
        intent_id = uuid4()

        transfer = await self.builder.build_transfer(
            source, self.pool_address, dto.amount, dto.asset_id, fee_payer=source
        )
        transfer = transfer.with_memo(deposit_intent_memo(intent_id))
        payload = message_bytes(transfer.message)
        intent = await self.deposit_intents.create(
            DepositIntent(
                id=intent_id,
                source_address=source,
                recipient_address=recipient,
                amount=dto.amount,
                delivered_amount=transfer.delivered_amount,
                asset_id=dto.asset_id,
                asset_decimals=dto.asset_decimals,
                message_b64=base64.b64encode(payload).decode("ascii"),
                created_at=self.clock.now_ms(),
            )
        )

        unsigned = SignedTransfer(message=transfer.message)
        return DepositBuildResponseDTO(
            intent_id=intent.id,
            transaction=serialize_transfer(unsigned),
            pool_address=self.pool_address,
            amount=intent.delivered_amount,
            fee_buffer_withheld=getattr(transfer.plan, "fee_buffer_withheld", 0),
        )

    async def _load_intent(self, dto: DirectSendDTO) -> DepositIntent:
        intent = await self.deposit_intents.get_by_id(dto.intent_id)
        if intent is None:
            raise DepositVerificationError(f"Deposit intent {dto.intent_id} not found")
        payload = base64.b64decode(intent.message_b64)
        if not is_signed_by(intent.source_address, payload, dto.deposit_tx_ref):
            raise DepositVerificationError(
                f"Transaction {dto.deposit_tx_ref} is not the deposit built for "
                f"intent {intent.id}"
            )
        return intent

    async def initiate(self, dto: DirectSendDTO) -> DirectSendResponseDTO:
        """Queue the hop-2 payout for a deposit the intent's source signed."""
        intent = await self._load_intent(dto)
        recipient = intent.recipient_address
        now = self.clock.now_ms()

        result = await self.compliance.screen(recipient)
        if not result.passed:
            detail = result.reason or "compliance"
            await self.audit.emit(
                AuditEvent(
                    event_type=AuditEventType.COMPLIANCE_BLOCKED,
                    subject_id=str(intent.id),
                    amount=intent.delivered_amount,
                    asset_id=intent.asset_id,
                    tx_ref=dto.deposit_tx_ref,
                    timestamp=now,
                    detail=detail,
                )
            )
            kind = "compliance_blocked" if result.checked_live else "compliance_unreachable"
            self.alerts.alert(kind, str(intent.id), f"recipient {recipient[:8]}... {detail}")
            raise ComplianceBlocked(recipient, detail, checked_live=result.checked_live)

        await verify_pool_credit(
            self.ledger,
            dto.deposit_tx_ref,
            self.pool_address,
            intent.asset_id,
            intent.delivered_amount,
        )
        payout_id = payout_id_for_deposit(dto.deposit_tx_ref)
        await bind_deposit(self.deposit_receipts, dto.deposit_tx_ref, f"send:{payout_id}")

        payout = RelayPayout(
            id=payout_id,
            recipient_address=recipient,
            amount=intent.delivered_amount,
            asset_id=intent.asset_id,
            asset_decimals=intent.asset_decimals,
            scheduled_for=now,
            created_at=now,
        )
        scheduled_for = now + draw_jitter_ms(self.policy.jitter_max_ms, self._rng)
        stored = await self.payout_queue.enqueue(payout, scheduled_for)
        logger.info("Direct send queued as payout %s", stored.id)
        return DirectSendResponseDTO(
            payout_id=stored.id, status=stored.status, scheduled_for=stored.scheduled_for
        )

    async def get_payout(self, payout_id: UUID) -> PayoutStatusDTO:
        payout = await self.payout_queue.get(payout_id)
        if payout is None:
            raise PayoutNotFound(f"Payout {payout_id} not found")
        return PayoutStatusDTO.from_payout(payout)
