"""RelayClaim repository implementation over a storage abstraction."""

from __future__ import annotations

from typing import List, Optional

from ...domain.relay.entities import ClaimStatus, RelayClaim
from ...domain.relay.repositories import ClaimRepository
from ..scripts import parse_script_result
from ..storage import KeyValueStore

ACTIVE_INDEX = "relay_claims:active"
ALL_INDEX = "relay_claims:all"


def _claim_key(link_id: str) -> str:
    return f"relay_claim:{link_id}"


class ClaimRepositoryImpl(ClaimRepository):
    """Claims keyed by link id, with a sorted set of active claims by expiry.

    Requires the ``RELAY_SCRIPTS`` to be registered on the store.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, claim: RelayClaim) -> RelayClaim:
        result = await self.store.run_script(
            "create_if_absent",
            keys=[_claim_key(claim.link_id)],
            args=[claim.model_dump_json()],
        )
        code, _ = parse_script_result(result)
        if code != 1:
            raise ValueError("Claim with this link id already exists")

        await self.store.zadd(ALL_INDEX, {claim.link_id: claim.created_at})
        if claim.status == ClaimStatus.ACTIVE:
            await self.store.zadd(ACTIVE_INDEX, {claim.link_id: claim.expires_at})
        return claim

    async def get_by_link_id(self, link_id: str) -> Optional[RelayClaim]:
        data = await self.store.get(_claim_key(link_id))
        if not data:
            return None
        return RelayClaim.model_validate_json(data)

    async def save_if_version(
        self, claim: RelayClaim, expected_version: int
    ) -> tuple[int, Optional[RelayClaim]]:
        updated = claim.model_copy(update={"version": expected_version + 1})
        result = await self.store.run_script(
            "save_if_version",
            keys=[_claim_key(claim.link_id)],
            args=[str(expected_version), updated.model_dump_json()],
        )
        code, payload = parse_script_result(result)

        if code == 1:
            if updated.status != ClaimStatus.ACTIVE:
                await self.store.zrem(ACTIVE_INDEX, updated.link_id)
            return 1, updated
        if code == 0:
            return 0, RelayClaim.model_validate_json(payload) if payload else None
        return 2, None

    async def list_active_expiring_before(self, timestamp_ms: int) -> List[RelayClaim]:
        # expires_at < now, so the upper bound is exclusive
        link_ids = await self.store.zrangebyscore(
            ACTIVE_INDEX, "-inf", f"({timestamp_ms}"
        )
        claims: List[RelayClaim] = []
        for link_id in link_ids:
            claim = await self.get_by_link_id(link_id)
            if claim is not None and claim.status == ClaimStatus.ACTIVE:
                claims.append(claim)
        return claims
