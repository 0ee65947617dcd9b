"""Tests for RelayTransactionBuilder against the in-memory ledger."""

from __future__ import annotations

import pytest

from poolrelay.application.relay.use_cases.transaction_builder import (
    RelayTransactionBuilder,
)
from poolrelay.crypto.transactions import (
    AssetTransfer,
    CloseAssetAccount,
    CreateAssetAccount,
    NativeTransfer,
    TransferAsset,
    TransferNative,
)
from poolrelay.domain.errors import InsufficientFunds
from poolrelay.domain.relay.policy import RelayPolicy
from tests.fixtures import FakeLedger, new_signer

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class TestNativeTransfers:
    async def test_claimer_paid_hop1_moves_full_amount(
        self, builder: RelayTransactionBuilder, ledger: FakeLedger
    ) -> None:
        stealth, claimer, pool = new_signer(), new_signer(), new_signer()
        ledger.fund(stealth.address, "native", 1_000_000)

        transfer = await builder.build_transfer(
            stealth.address, pool.address, 1_000_000, "native", fee_payer=claimer.address
        )

        assert isinstance(transfer.plan, NativeTransfer)
        assert transfer.plan.fee_buffer_withheld == 0
        assert transfer.delivered_amount == 1_000_000
        assert transfer.message.fee_payer == claimer.address
        assert transfer.message.required_signers == [claimer.address, stealth.address]
        assert transfer.message.sequencing_token.startswith("height-")

    async def test_self_paid_transfer_withholds_fee_buffer(
        self, builder: RelayTransactionBuilder, ledger: FakeLedger, policy: RelayPolicy
    ) -> None:
        pool, recipient = new_signer(), new_signer()
        ledger.fund(pool.address, "native", 10_000_000)

        transfer = await builder.build_transfer(
            pool.address, recipient.address, 1_000_000, "native", fee_payer=pool.address
        )

        assert transfer.plan.fee_buffer_withheld == policy.fee_buffer
        assert transfer.delivered_amount == 1_000_000 - policy.fee_buffer
        instruction = transfer.message.instructions[0]
        assert isinstance(instruction, TransferNative)
        assert instruction.amount == 1_000_000 - policy.fee_buffer
        assert transfer.message.required_signers == [pool.address]

    async def test_amount_not_covering_fee_buffer_rejected(
        self, builder: RelayTransactionBuilder, ledger: FakeLedger, policy: RelayPolicy
    ) -> None:
        pool = new_signer()
        ledger.fund(pool.address, "native", 10_000_000)

        with pytest.raises(InsufficientFunds) as exc_info:
            await builder.build_transfer(
                pool.address, new_signer().address, policy.fee_buffer, "native",
                fee_payer=pool.address,
            )
        assert exc_info.value.required == policy.fee_buffer + 1

    async def test_underfunded_source_rejected(
        self, builder: RelayTransactionBuilder, ledger: FakeLedger
    ) -> None:
        stealth = new_signer()
        ledger.fund(stealth.address, "native", 999)

        with pytest.raises(InsufficientFunds) as exc_info:
            await builder.build_transfer(
                stealth.address, new_signer().address, 1_000, "native",
                fee_payer=new_signer().address,
            )
        assert exc_info.value.available == 999

    async def test_keep_alive_requires_reserve(self, ledger: FakeLedger) -> None:
        policy = RelayPolicy(
            claim_ttl_ms=1000,
            max_claim_attempts=3,
            max_retries=3,
            jitter_max_ms=0,
            base_backoff_ms=0,
            fee_buffer=0,
            native_reserve=500,
            confirmation_timeout_s=1,
        )
        builder = RelayTransactionBuilder(ledger, policy)
        pool = new_signer()
        ledger.fund(pool.address, "native", 1_000)

        with pytest.raises(InsufficientFunds):
            await builder.build_transfer(
                pool.address, new_signer().address, 600, "native",
                fee_payer=pool.address, keep_alive=True,
            )
        transfer = await builder.build_transfer(
            pool.address, new_signer().address, 500, "native",
            fee_payer=pool.address, keep_alive=True,
        )
        assert transfer.delivered_amount == 500

    async def test_zero_amount_rejected(self, builder: RelayTransactionBuilder) -> None:
        with pytest.raises(ValueError):
            await builder.build_transfer("a", "b", 0, "native", fee_payer="a")


class TestAssetTransfers:
    async def test_hop1_drains_and_closes_stealth_account(
        self, builder: RelayTransactionBuilder, ledger: FakeLedger
    ) -> None:
        stealth, claimer, pool = new_signer(), new_signer(), new_signer()
        ledger.fund(stealth.address, USDC, 2_500_000)

        transfer = await builder.build_transfer(
            stealth.address,
            pool.address,
            2_000_000,
            USDC,
            fee_payer=claimer.address,
            close_source_to=claimer.address,
        )

        plan = transfer.plan
        assert isinstance(plan, AssetTransfer)
        assert plan.amount == 2_500_000
        assert plan.creates_destination_account
        assert plan.closes_source_to == claimer.address
        kinds = [type(ix) for ix in transfer.message.instructions]
        assert kinds == [CreateAssetAccount, TransferAsset, CloseAssetAccount]
        create = transfer.message.instructions[0]
        assert create.payer == claimer.address
        assert create.account == ledger.derive_asset_account(pool.address, USDC)

    async def test_existing_destination_account_not_recreated(
        self, builder: RelayTransactionBuilder, ledger: FakeLedger
    ) -> None:
        pool, recipient = new_signer(), new_signer()
        ledger.fund(pool.address, USDC, 5_000_000)
        ledger.fund(recipient.address, USDC, 0)

        transfer = await builder.build_transfer(
            pool.address, recipient.address, 1_000_000, USDC, fee_payer=pool.address
        )

        assert not transfer.plan.creates_destination_account
        assert [type(ix) for ix in transfer.message.instructions] == [TransferAsset]
        assert transfer.delivered_amount == 1_000_000

    async def test_underfunded_asset_account_rejected(
        self, builder: RelayTransactionBuilder, ledger: FakeLedger
    ) -> None:
        pool = new_signer()
        ledger.fund(pool.address, USDC, 10)

        with pytest.raises(InsufficientFunds):
            await builder.build_transfer(
                pool.address, new_signer().address, 11, USDC, fee_payer=pool.address
            )
