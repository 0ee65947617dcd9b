"""Deposit intent repository over a storage abstraction."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from ...domain.relay.entities import DepositIntent
from ...domain.relay.repositories import DepositIntentRepository
from ..scripts import parse_script_result
from ..storage import KeyValueStore


def _intent_key(intent_id: UUID | str) -> str:
    return f"relay_deposit_intent:{intent_id}"


class DepositIntentRepositoryImpl(DepositIntentRepository):
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, intent: DepositIntent) -> DepositIntent:
        result = await self.store.run_script(
            "create_if_absent",
            keys=[_intent_key(intent.id)],
            args=[intent.model_dump_json()],
        )
        code, _ = parse_script_result(result)
        if code != 1:
            raise ValueError("Deposit intent with this id already exists")
        return intent

    async def get_by_id(self, intent_id: UUID) -> Optional[DepositIntent]:
        data = await self.store.get(_intent_key(intent_id))
        if not data:
            return None
        return DepositIntent.model_validate_json(data)
