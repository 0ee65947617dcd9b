"""Pytest fixtures for relay use case stories."""

from __future__ import annotations

import pytest

from poolrelay.application.relay.dtos import (
    ConfirmDepositResponseDTO,
    IssueClaimDTO,
    IssuedClaimDTO,
)
from poolrelay.application.relay.use_cases.claim_registry import ClaimRegistry
from poolrelay.crypto.stealth import Ed25519Signer
from tests.fixtures import FakeLedger, cosign
from tests.use_cases.helpers import (
    CLAIM_AMOUNT,
    ClaimAndDeposit,
    ConfirmedClaim,
    IssueFunded,
)


@pytest.fixture
def issue_funded_claim(
    claim_registry: ClaimRegistry, ledger: FakeLedger
) -> IssueFunded:
    """Issue a claim and fund its stealth address, as the issuer's wallet would."""

    async def _issue(
        amount: int = CLAIM_AMOUNT,
        asset_id: str = "native",
        asset_decimals: int = 9,
        asset_symbol: str = "SOL",
        ttl_seconds: int | None = None,
    ) -> IssuedClaimDTO:
        issued = await claim_registry.issue(
            IssueClaimDTO(
                amount=amount,
                asset_id=asset_id,
                asset_decimals=asset_decimals,
                asset_symbol=asset_symbol,
                ttl_seconds=ttl_seconds,
            )
        )
        ledger.fund(issued.stealth_address, asset_id, amount)
        return issued

    return _issue


@pytest.fixture
def claim_and_deposit(
    claim_registry: ClaimRegistry, ledger: FakeLedger
) -> ClaimAndDeposit:
    """Request hop-1 as ``claimer``, co-sign it and submit. Returns the tx_ref."""

    async def _claim(link_id: str, claimer: Ed25519Signer) -> str:
        if claimer.address not in ledger.accounts:
            ledger.fund(claimer.address, "native", 10_000_000)
        built = await claim_registry.request_build(link_id, claimer.address)
        return await ledger.submit(cosign(built.transaction, claimer))

    return _claim


@pytest.fixture
def confirmed_claim(
    issue_funded_claim: IssueFunded,
    claim_and_deposit: ClaimAndDeposit,
    claim_registry: ClaimRegistry,
    claimer_signer: Ed25519Signer,
) -> ConfirmedClaim:
    """Carry a claim through hop-1 so its payout sits in the queue."""

    async def _confirmed(**issue_kwargs: object) -> ConfirmDepositResponseDTO:
        issued = await issue_funded_claim(**issue_kwargs)
        tx_ref = await claim_and_deposit(issued.link_id, claimer_signer)
        return await claim_registry.confirm_deposit(issued.link_id, tx_ref)

    return _confirmed
