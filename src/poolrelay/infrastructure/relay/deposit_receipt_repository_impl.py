"""Deposit receipt repository over a storage abstraction."""

from __future__ import annotations

from ...domain.relay.repositories import DepositReceiptRepository
from ..scripts import parse_script_result
from ..storage import KeyValueStore


class DepositReceiptRepositoryImpl(DepositReceiptRepository):
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def bind(self, tx_ref: str, owner: str) -> str:
        result = await self.store.run_script(
            "create_if_absent", keys=[f"relay_deposit:{tx_ref}"], args=[owner]
        )
        _, bound = parse_script_result(result)
        return bound
