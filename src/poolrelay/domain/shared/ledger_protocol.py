"""Protocol for the ledger the relay settles on.

The relay never speaks the ledger wire protocol itself. Any implementation
that satisfies this interface (an RPC gateway client, a test double) can be
injected into the services.
"""

from __future__ import annotations

from typing import Optional, Protocol

from pydantic import BaseModel, Field


class LedgerTransaction(BaseModel):
    """What the relay needs to know about a landed transaction.

    ``balance_deltas`` maps ``"<address>:<asset_id>"`` to the signed change
    in base units that the transaction caused.
    """

    tx_ref: str
    succeeded: bool
    balance_deltas: dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None

    def credited(self, address: str, asset_id: str) -> int:
        return self.balance_deltas.get(balance_key(address, asset_id), 0)


def balance_key(address: str, asset_id: str) -> str:
    return f"{address}:{asset_id}"


class LedgerProtocol(Protocol):
    """Read balances, fetch sequencing tokens, submit and confirm transfers.

    Transport failures, timeouts and stale sequencing tokens must surface as
    ``TransientLedgerError``.
    """

    async def get_balance(self, address: str, asset_id: str) -> int:
        """Balance in base units. Asset balances are read from the asset account."""
        ...

    async def account_exists(self, address: str) -> bool: ...

    def derive_asset_account(self, owner: str, asset_id: str) -> str:
        """Deterministic asset account address for ``owner``."""
        ...

    async def latest_sequencing_token(self) -> str: ...

    async def submit(self, signed_tx_b64: str) -> str:
        """Submit a fully signed transfer and return its tx_ref."""
        ...

    async def wait_for_confirmation(self, tx_ref: str) -> LedgerTransaction:
        """Block until the transaction is final."""
        ...

    async def get_transaction(self, tx_ref: str) -> Optional[LedgerTransaction]:
        """Return the landed transaction, or None if the ledger never saw it."""
        ...
