"""Builds unsigned relay transfers against live ledger state."""

from __future__ import annotations

import logging
from typing import Optional

from ....crypto.transactions import (
    AssetTransfer,
    CloseAssetAccount,
    CreateAssetAccount,
    Instruction,
    NativeTransfer,
    TransferAsset,
    TransferMessage,
    TransferNative,
    UnsignedTransfer,
)
from ....domain.errors import InsufficientFunds
from ....domain.relay.entities import is_native_asset
from ....domain.relay.policy import RelayPolicy
from ....domain.shared import LedgerProtocol

logger = logging.getLogger(__name__)


def _required_signers(fee_payer: str, source: str) -> list[str]:
    return [fee_payer] if fee_payer == source else [fee_payer, source]


class RelayTransactionBuilder:
    """Produces the hop-1 and hop-2 transfers.

    Native transfers paid for by their own source withhold ``fee_buffer``
    from the amount sent. Sources that must stay open (``keep_alive``)
    also keep ``native_reserve`` on top of the amount.
    """

    def __init__(self, ledger: LedgerProtocol, policy: RelayPolicy):
        self.ledger = ledger
        self.policy = policy

    async def build_transfer(
        self,
        source: str,
        destination: str,
        amount: int,
        asset_id: str,
        fee_payer: str,
        *,
        close_source_to: Optional[str] = None,
        keep_alive: bool = False,
    ) -> UnsignedTransfer:
        if amount <= 0:
            raise ValueError("Transfer amount must be positive")

        if is_native_asset(asset_id):
            plan, instructions = await self._plan_native(
                source, destination, amount, asset_id, fee_payer, keep_alive
            )
        else:
            plan, instructions = await self._plan_asset(
                source, destination, amount, asset_id, fee_payer, close_source_to
            )

        message = TransferMessage(
            fee_payer=fee_payer,
            sequencing_token=await self.ledger.latest_sequencing_token(),
            instructions=instructions,
            required_signers=_required_signers(fee_payer, source),
        )
        return UnsignedTransfer(message=message, plan=plan)

    async def _plan_native(
        self,
        source: str,
        destination: str,
        amount: int,
        asset_id: str,
        fee_payer: str,
        keep_alive: bool,
    ) -> tuple[NativeTransfer, list[Instruction]]:
        withheld = self.policy.fee_buffer if fee_payer == source else 0
        if amount <= withheld:
            raise InsufficientFunds(source, required=withheld + 1, available=amount)

        required = amount + (self.policy.native_reserve if keep_alive else 0)
        available = await self.ledger.get_balance(source, asset_id)
        if available < required:
            raise InsufficientFunds(source, required=required, available=available)

        send = amount - withheld
        plan = NativeTransfer(
            source=source,
            destination=destination,
            requested_amount=amount,
            amount=send,
            fee_buffer_withheld=withheld,
        )
        return plan, [TransferNative(source=source, destination=destination, amount=send)]

    async def _plan_asset(
        self,
        source: str,
        destination: str,
        amount: int,
        asset_id: str,
        fee_payer: str,
        close_source_to: Optional[str],
    ) -> tuple[AssetTransfer, list[Instruction]]:
        source_account = self.ledger.derive_asset_account(source, asset_id)
        destination_account = self.ledger.derive_asset_account(destination, asset_id)

        available = await self.ledger.get_balance(source, asset_id)
        if available < amount:
            raise InsufficientFunds(source, required=amount, available=available)

        # Closing requires an empty account, so move everything it holds.
        move = available if close_source_to else amount

        instructions: list[Instruction] = []
        creates = not await self.ledger.account_exists(destination_account)
        if creates:
            instructions.append(
                CreateAssetAccount(
                    payer=fee_payer,
                    account=destination_account,
                    owner=destination,
                    asset_id=asset_id,
                )
            )
        instructions.append(
            TransferAsset(
                source_account=source_account,
                destination_account=destination_account,
                authority=source,
                amount=move,
            )
        )
        if close_source_to:
            instructions.append(
                CloseAssetAccount(
                    account=source_account,
                    beneficiary=close_source_to,
                    authority=source,
                )
            )

        plan = AssetTransfer(
            asset_id=asset_id,
            owner=source,
            destination=destination,
            source_account=source_account,
            destination_account=destination_account,
            requested_amount=amount,
            amount=move,
            creates_destination_account=creates,
            closes_source_to=close_source_to,
        )
        return plan, instructions
