"""Audit sinks and the operator alert path."""

from __future__ import annotations

import logging
from typing import Sequence

from prometheus_client import Counter

from ...domain.relay.audit import AuditEvent
from ...domain.shared import AuditEmitterProtocol
from ..storage import KeyValueStore

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("poolrelay.audit")

AUDIT_INDEX = "relay_audit:events"

relay_audit_events_total = Counter(
    "relay_audit_events_total",
    "Audit events emitted by the relay",
    ["event_type"],
)

relay_operator_alerts_total = Counter(
    "relay_operator_alerts_total",
    "Conditions escalated to the operator",
    ["kind"],
)


class LoggingAuditEmitter:
    """One JSON line per event on the ``poolrelay.audit`` logger."""

    async def emit(self, event: AuditEvent) -> None:
        relay_audit_events_total.labels(event_type=event.event_type.value).inc()
        audit_logger.info(event.model_dump_json(exclude_none=True))


class RedisAuditEmitter:
    """Appends events to a time-indexed sorted set."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def emit(self, event: AuditEvent) -> None:
        await self.store.zadd(AUDIT_INDEX, {event.model_dump_json(): event.timestamp})


class CompositeAuditEmitter:
    """Fans an event out to several sinks. A failing sink never blocks the others."""

    def __init__(self, emitters: Sequence[AuditEmitterProtocol]):
        self._emitters = list(emitters)

    async def emit(self, event: AuditEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception:
                logger.exception(
                    "Audit sink %s failed for %s", type(emitter).__name__, event.event_type
                )


class OperatorAlerts:
    """Escalates conditions that need a human: CRITICAL log plus a counter."""

    def alert(self, kind: str, subject_id: str, detail: str) -> None:
        relay_operator_alerts_total.labels(kind=kind).inc()
        logger.critical("OPERATOR ALERT [%s] %s: %s", kind, subject_id, detail)
