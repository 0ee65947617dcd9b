"""Relay domain repository interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from .entities import DepositIntent, PayoutStatus, RelayClaim, RelayPayout


class ClaimRepository(ABC):
    """Abstract repository interface for RelayClaim entities.

    Claims are never updated blindly: every write goes through
    ``save_if_version`` so concurrent transitions cannot both succeed.
    """

    @abstractmethod
    async def create(self, claim: RelayClaim) -> RelayClaim:
        """Persist a new claim. Raises ValueError if the link id is taken."""
        pass

    @abstractmethod
    async def get_by_link_id(self, link_id: str) -> Optional[RelayClaim]:
        pass

    @abstractmethod
    async def save_if_version(
        self, claim: RelayClaim, expected_version: int
    ) -> tuple[int, Optional[RelayClaim]]:
        """
        Atomically replace the stored claim if its version still matches.

        Returns:
          (1, claim) -> stored with version ``expected_version + 1``
          (0, claim) -> version conflict (returns current claim)
          (2, None) -> claim missing
        """
        pass

    @abstractmethod
    async def list_active_expiring_before(self, timestamp_ms: int) -> List[RelayClaim]:
        """Active claims whose ``expires_at`` is before ``timestamp_ms``."""
        pass


class PayoutRepository(ABC):
    """Abstract repository interface for RelayPayout entities. Payouts are never deleted."""

    @abstractmethod
    async def create_if_absent(self, payout: RelayPayout) -> tuple[int, RelayPayout]:
        """
        Persist a payout unless one with the same id exists.

        Returns:
          (1, payout) -> created
          (0, payout) -> already existed (returns stored payout)
        """
        pass

    @abstractmethod
    async def get_by_id(self, payout_id: UUID) -> Optional[RelayPayout]:
        pass

    @abstractmethod
    async def save_if_version(
        self, payout: RelayPayout, expected_version: int
    ) -> tuple[int, Optional[RelayPayout]]:
        """Same contract as ``ClaimRepository.save_if_version``."""
        pass

    @abstractmethod
    async def list_queued_due(self, timestamp_ms: int) -> List[RelayPayout]:
        """Queued payouts with ``scheduled_for <= timestamp_ms``."""
        pass

    @abstractmethod
    async def list_processing_expired(self, timestamp_ms: int) -> List[RelayPayout]:
        """Processing payouts whose lease ended before ``timestamp_ms``."""
        pass

    @abstractmethod
    async def list_by_status(
        self, status: PayoutStatus, limit: int = 100
    ) -> List[RelayPayout]:
        """Newest first, read from a per-status index."""
        pass


class DepositReceiptRepository(ABC):
    """Records which claim or send consumed each hop-1 deposit.

    A deposit transaction can fund exactly one payout, across both claim
    links and direct sends.
    """

    @abstractmethod
    async def bind(self, tx_ref: str, owner: str) -> str:
        """Bind ``tx_ref`` to ``owner`` unless already bound. Returns the bound owner."""
        pass


class DepositIntentRepository(ABC):
    """Direct-send deposits built by the relay, keyed by intent id."""

    @abstractmethod
    async def create(self, intent: DepositIntent) -> DepositIntent:
        """Persist a new intent. Raises ValueError if the id is taken."""
        pass

    @abstractmethod
    async def get_by_id(self, intent_id: UUID) -> Optional[DepositIntent]:
        pass
