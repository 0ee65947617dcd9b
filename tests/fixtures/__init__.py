"""Test fixtures for in-memory implementations."""

from .fake_ledger import FakeLedger, cosign
from .in_memory_repositories import (
    InMemoryClaimRepository,
    InMemoryDepositIntentRepository,
    InMemoryDepositReceiptRepository,
    InMemoryPayoutRepository,
    register_relay_scripts,
)
from .in_memory_storage import InMemoryKeyValueStore
from .relay_doubles import (
    FakeClock,
    FakeComplianceGate,
    RecordingAlerts,
    RecordingAuditEmitter,
    new_signer,
)

__all__ = [
    "FakeClock",
    "FakeComplianceGate",
    "FakeLedger",
    "InMemoryClaimRepository",
    "InMemoryDepositIntentRepository",
    "InMemoryDepositReceiptRepository",
    "InMemoryKeyValueStore",
    "InMemoryPayoutRepository",
    "RecordingAlerts",
    "RecordingAuditEmitter",
    "cosign",
    "new_signer",
    "register_relay_scripts",
]
