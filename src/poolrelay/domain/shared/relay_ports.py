"""Ports for the relay's non-ledger collaborators."""

from __future__ import annotations

from typing import Protocol

from ..relay.audit import AuditEvent
from ..relay.entities import ComplianceResult


class ComplianceGateProtocol(Protocol):
    async def screen(self, address: str) -> ComplianceResult: ...


class AuditEmitterProtocol(Protocol):
    async def emit(self, event: AuditEvent) -> None: ...


class OperatorAlertsProtocol(Protocol):
    """Out-of-band notifications for conditions a human must look at."""

    def alert(self, kind: str, subject_id: str, detail: str) -> None: ...


class Clock(Protocol):
    def now_ms(self) -> int: ...
