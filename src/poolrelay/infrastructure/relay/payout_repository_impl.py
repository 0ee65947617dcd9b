"""RelayPayout repository implementation over a storage abstraction."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from ...domain.relay.entities import PayoutStatus, RelayPayout
from ...domain.relay.repositories import PayoutRepository
from ..scripts import parse_script_result
from ..storage import KeyValueStore

QUEUED_INDEX = "relay_payouts:queued"
PROCESSING_INDEX = "relay_payouts:processing"


def _payout_key(payout_id: UUID | str) -> str:
    return f"relay_payout:{payout_id}"


def _status_index(status: PayoutStatus) -> str:
    return f"relay_payouts:status:{status.value}"


class PayoutRepositoryImpl(PayoutRepository):
    """Payouts keyed by id.

    Indexes, all sorted sets:
      relay_payouts:queued          queued payouts by ``scheduled_for``
      relay_payouts:processing      in-flight payouts by ``processing_until``
      relay_payouts:status:<status> every payout in that status by ``created_at``
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def _sync_indexes(self, payout: RelayPayout) -> None:
        member = str(payout.id)
        if payout.status == PayoutStatus.QUEUED:
            await self.store.zadd(QUEUED_INDEX, {member: payout.scheduled_for})
        else:
            await self.store.zrem(QUEUED_INDEX, member)

        if payout.status == PayoutStatus.PROCESSING:
            await self.store.zadd(
                PROCESSING_INDEX, {member: payout.processing_until or 0}
            )
        else:
            await self.store.zrem(PROCESSING_INDEX, member)

        for status in PayoutStatus:
            if status == payout.status:
                await self.store.zadd(_status_index(status), {member: payout.created_at})
            else:
                await self.store.zrem(_status_index(status), member)

    async def _load_many(
        self, ids: List[str], status: PayoutStatus
    ) -> List[RelayPayout]:
        payouts: List[RelayPayout] = []
        for payout_id in ids:
            payout = await self.get_by_id(UUID(payout_id))
            if payout is not None and payout.status == status:
                payouts.append(payout)
        return payouts

    async def create_if_absent(self, payout: RelayPayout) -> tuple[int, RelayPayout]:
        result = await self.store.run_script(
            "create_if_absent",
            keys=[_payout_key(payout.id)],
            args=[payout.model_dump_json()],
        )
        code, payload = parse_script_result(result)
        if code != 1:
            return 0, RelayPayout.model_validate_json(payload)

        await self._sync_indexes(payout)
        return 1, payout

    async def get_by_id(self, payout_id: UUID) -> Optional[RelayPayout]:
        data = await self.store.get(_payout_key(payout_id))
        if not data:
            return None
        return RelayPayout.model_validate_json(data)

    async def save_if_version(
        self, payout: RelayPayout, expected_version: int
    ) -> tuple[int, Optional[RelayPayout]]:
        updated = payout.model_copy(update={"version": expected_version + 1})
        result = await self.store.run_script(
            "save_if_version",
            keys=[_payout_key(payout.id)],
            args=[str(expected_version), updated.model_dump_json()],
        )
        code, payload = parse_script_result(result)

        if code == 1:
            await self._sync_indexes(updated)
            return 1, updated
        if code == 0:
            return 0, RelayPayout.model_validate_json(payload) if payload else None
        return 2, None

    async def list_queued_due(self, timestamp_ms: int) -> List[RelayPayout]:
        ids = await self.store.zrangebyscore(QUEUED_INDEX, "-inf", timestamp_ms)
        return await self._load_many(ids, PayoutStatus.QUEUED)

    async def list_processing_expired(self, timestamp_ms: int) -> List[RelayPayout]:
        # processing_until < now, so the upper bound is exclusive
        ids = await self.store.zrangebyscore(
            PROCESSING_INDEX, "-inf", f"({timestamp_ms}"
        )
        payouts = await self._load_many(ids, PayoutStatus.PROCESSING)
        return [p for p in payouts if (p.processing_until or 0) < timestamp_ms]

    async def list_by_status(
        self, status: PayoutStatus, limit: int = 100
    ) -> List[RelayPayout]:
        ids = await self.store.zrevrange(_status_index(status), 0, limit - 1)
        return await self._load_many(ids, status)
