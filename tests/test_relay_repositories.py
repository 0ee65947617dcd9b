"""Repository tests: version compare-and-set, indexes and deposit binding.

The same cases run against the in-memory store and, when available, a real
Redis with the Lua scripts loaded.
"""

from __future__ import annotations

from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio

from poolrelay.domain.relay.entities import (
    ClaimStatus,
    DepositIntent,
    PayoutStatus,
    RelayClaim,
    RelayPayout,
)
from poolrelay.infrastructure.relay.claim_repository_impl import ClaimRepositoryImpl
from poolrelay.infrastructure.relay.deposit_intent_repository_impl import (
    DepositIntentRepositoryImpl,
)
from poolrelay.infrastructure.relay.deposit_receipt_repository_impl import (
    DepositReceiptRepositoryImpl,
)
from poolrelay.infrastructure.relay.payout_repository_impl import (
    PayoutRepositoryImpl,
)
from poolrelay.infrastructure.scripts import RELAY_SCRIPTS
from poolrelay.infrastructure.storage import KeyValueStore
from tests.fixtures import InMemoryKeyValueStore

NOW = 1_700_000_000_000


@pytest.fixture(params=["memory", "redis"])
def kv_backing(request: pytest.FixtureRequest) -> KeyValueStore:
    if request.param == "memory":
        backing: KeyValueStore = InMemoryKeyValueStore()
    else:
        backing = request.getfixturevalue("redis_store")
    return backing


@pytest_asyncio.fixture
async def kv(kv_backing: KeyValueStore) -> AsyncGenerator[KeyValueStore, None]:
    backing = kv_backing
    for name, script in RELAY_SCRIPTS.items():
        await backing.register_script(name, script)
    yield backing


def _claim(**overrides: object) -> RelayClaim:
    fields: dict = {
        "stealth_address": "stealth",
        "stealth_seed_b64": "c2VlZA==",
        "amount": 100,
        "asset_id": "native",
        "asset_decimals": 9,
        "expires_at": NOW + 1_000,
        "created_at": NOW,
    }
    fields.update(overrides)
    return RelayClaim(**fields)


def _payout(**overrides: object) -> RelayPayout:
    fields: dict = {
        "recipient_address": "recipient",
        "amount": 100,
        "asset_id": "native",
        "asset_decimals": 9,
        "scheduled_for": NOW,
        "created_at": NOW,
    }
    fields.update(overrides)
    return RelayPayout(**fields)


class TestClaimRepository:
    async def test_create_and_get(self, kv: KeyValueStore) -> None:
        repo = ClaimRepositoryImpl(kv)
        claim = await repo.create(_claim())

        loaded = await repo.get_by_link_id(claim.link_id)

        assert loaded == claim
        assert await repo.get_by_link_id("missing") is None

    async def test_duplicate_link_id_rejected(self, kv: KeyValueStore) -> None:
        repo = ClaimRepositoryImpl(kv)
        claim = await repo.create(_claim())
        with pytest.raises(ValueError):
            await repo.create(_claim(link_id=claim.link_id))

    async def test_save_if_version_bumps_version(self, kv: KeyValueStore) -> None:
        repo = ClaimRepositoryImpl(kv)
        claim = await repo.create(_claim())

        code, stored = await repo.save_if_version(
            claim.model_copy(update={"claim_attempts": 1}), claim.version
        )

        assert code == 1
        assert stored is not None and stored.version == claim.version + 1
        assert (await repo.get_by_link_id(claim.link_id)).claim_attempts == 1

    async def test_stale_version_loses(self, kv: KeyValueStore) -> None:
        repo = ClaimRepositoryImpl(kv)
        claim = await repo.create(_claim())
        await repo.save_if_version(claim.model_copy(update={"claim_attempts": 1}), 0)

        code, current = await repo.save_if_version(
            claim.model_copy(update={"claim_attempts": 9}), 0
        )

        assert code == 0
        assert current is not None and current.claim_attempts == 1

    async def test_missing_claim(self, kv: KeyValueStore) -> None:
        code, stored = await ClaimRepositoryImpl(kv).save_if_version(_claim(), 0)
        assert (code, stored) == (2, None)

    async def test_expiry_index(self, kv: KeyValueStore) -> None:
        repo = ClaimRepositoryImpl(kv)
        due = await repo.create(_claim(expires_at=NOW - 1))
        boundary = await repo.create(_claim(expires_at=NOW))
        await repo.create(_claim(expires_at=NOW + 1))

        expiring = await repo.list_active_expiring_before(NOW)

        # expires_at == now is still claimable
        assert [c.link_id for c in expiring] == [due.link_id]
        assert boundary.link_id not in [c.link_id for c in expiring]

    async def test_non_active_claims_leave_expiry_index(self, kv: KeyValueStore) -> None:
        repo = ClaimRepositoryImpl(kv)
        claim = await repo.create(_claim(expires_at=NOW - 1))
        deposited = claim.model_copy()
        deposited.transition(ClaimStatus.DEPOSITED)
        await repo.save_if_version(deposited, claim.version)

        assert await repo.list_active_expiring_before(NOW) == []


class TestPayoutRepository:
    async def test_create_if_absent(self, kv: KeyValueStore) -> None:
        repo = PayoutRepositoryImpl(kv)
        payout = _payout()

        assert (await repo.create_if_absent(payout))[0] == 1
        code, existing = await repo.create_if_absent(payout.model_copy(update={"amount": 5}))

        assert code == 0
        assert existing.amount == 100

    async def test_queued_due_respects_schedule(self, kv: KeyValueStore) -> None:
        repo = PayoutRepositoryImpl(kv)
        due = _payout(scheduled_for=NOW)
        later = _payout(scheduled_for=NOW + 10)
        await repo.create_if_absent(due)
        await repo.create_if_absent(later)

        assert [p.id for p in await repo.list_queued_due(NOW)] == [due.id]
        assert {p.id for p in await repo.list_queued_due(NOW + 10)} == {due.id, later.id}

    async def test_processing_leaves_queue(self, kv: KeyValueStore) -> None:
        repo = PayoutRepositoryImpl(kv)
        payout = _payout()
        await repo.create_if_absent(payout)

        await repo.save_if_version(
            payout.model_copy(update={"status": PayoutStatus.PROCESSING}), 0
        )

        assert await repo.list_queued_due(NOW) == []
        processing = await repo.list_by_status(PayoutStatus.PROCESSING)
        assert [p.id for p in processing] == [payout.id]

    async def test_status_index_follows_transitions(self, kv: KeyValueStore) -> None:
        repo = PayoutRepositoryImpl(kv)
        older = _payout(created_at=NOW)
        newer = _payout(created_at=NOW + 1)
        await repo.create_if_absent(older)
        await repo.create_if_absent(newer)

        queued = await repo.list_by_status(PayoutStatus.QUEUED)
        assert [p.id for p in queued] == [newer.id, older.id]
        assert [p.id for p in await repo.list_by_status(PayoutStatus.QUEUED, limit=1)] == [
            newer.id
        ]

        await repo.save_if_version(
            newer.model_copy(update={"status": PayoutStatus.PROCESSING}), 0
        )

        assert [p.id for p in await repo.list_by_status(PayoutStatus.QUEUED)] == [older.id]
        assert [p.id for p in await repo.list_by_status(PayoutStatus.PROCESSING)] == [
            newer.id
        ]
        assert await repo.list_by_status(PayoutStatus.COMPLETED) == []

    async def test_expired_leases(self, kv: KeyValueStore) -> None:
        repo = PayoutRepositoryImpl(kv)
        held = _payout()
        lapsed = _payout()
        await repo.create_if_absent(held)
        await repo.create_if_absent(lapsed)
        await repo.save_if_version(
            held.model_copy(
                update={"status": PayoutStatus.PROCESSING, "processing_until": NOW + 100}
            ),
            0,
        )
        await repo.save_if_version(
            lapsed.model_copy(
                update={"status": PayoutStatus.PROCESSING, "processing_until": NOW - 1}
            ),
            0,
        )

        assert [p.id for p in await repo.list_processing_expired(NOW)] == [lapsed.id]
        assert [p.id for p in await repo.list_processing_expired(NOW + 100)] == [lapsed.id]
        expired = await repo.list_processing_expired(NOW + 101)
        assert {p.id for p in expired} == {held.id, lapsed.id}

    async def test_get_missing(self, kv: KeyValueStore) -> None:
        assert await PayoutRepositoryImpl(kv).get_by_id(uuid4()) is None


class TestDepositReceiptRepository:
    async def test_first_owner_wins(self, kv: KeyValueStore) -> None:
        repo = DepositReceiptRepositoryImpl(kv)

        assert await repo.bind("tx-1", "claim:a") == "claim:a"
        assert await repo.bind("tx-1", "send:b") == "claim:a"
        assert await repo.bind("tx-1", "claim:a") == "claim:a"


class TestDepositIntentRepository:
    async def test_create_and_get(self, kv: KeyValueStore) -> None:
        repo = DepositIntentRepositoryImpl(kv)
        intent = DepositIntent(
            source_address="sender",
            recipient_address="recipient",
            amount=100,
            delivered_amount=95,
            asset_id="native",
            asset_decimals=9,
            message_b64="bWVzc2FnZQ==",
            created_at=NOW,
        )

        await repo.create(intent)

        assert await repo.get_by_id(intent.id) == intent
        assert await repo.get_by_id(uuid4()) is None
        with pytest.raises(ValueError):
            await repo.create(intent)
