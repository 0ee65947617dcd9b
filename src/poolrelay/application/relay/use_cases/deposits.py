"""Hop-1 deposit verification shared by claims and direct sends."""

from __future__ import annotations

from ....domain.errors import DepositVerificationError
from ....domain.relay.entities import NATIVE_ASSET_ID, is_native_asset
from ....domain.relay.repositories import DepositReceiptRepository
from ....domain.shared import LedgerProtocol, LedgerTransaction


def pool_receiving_account(ledger: LedgerProtocol, pool_address: str, asset_id: str) -> str:
    if is_native_asset(asset_id):
        return pool_address
    return ledger.derive_asset_account(pool_address, asset_id)


async def verify_pool_credit(
    ledger: LedgerProtocol,
    tx_ref: str,
    pool_address: str,
    asset_id: str,
    minimum: int,
) -> LedgerTransaction:
    """Check that ``tx_ref`` landed, succeeded and credited the pool with ``minimum``."""
    tx = await ledger.get_transaction(tx_ref)
    if tx is None:
        raise DepositVerificationError(f"Transaction {tx_ref} not found")
    if not tx.succeeded:
        raise DepositVerificationError(f"Transaction {tx_ref} failed on ledger")

    account = pool_receiving_account(ledger, pool_address, asset_id)
    # Native deltas are reported under one canonical id whatever alias was used.
    reported_as = NATIVE_ASSET_ID if is_native_asset(asset_id) else asset_id
    credited = tx.credited(account, reported_as)
    if credited < minimum:
        raise DepositVerificationError(
            f"Transaction {tx_ref} credited the pool {credited}, expected {minimum}"
        )
    return tx


async def bind_deposit(
    receipts: DepositReceiptRepository, tx_ref: str, owner: str
) -> None:
    """Reserve ``tx_ref`` for ``owner``; a deposit funds a single payout."""
    bound = await receipts.bind(tx_ref, owner)
    if bound != owner:
        raise DepositVerificationError(f"Transaction {tx_ref} already funded another payout")
