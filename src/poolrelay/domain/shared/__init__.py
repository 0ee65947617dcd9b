"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .ledger_protocol import LedgerProtocol, LedgerTransaction, balance_key
from .relay_ports import (
    AuditEmitterProtocol,
    Clock,
    ComplianceGateProtocol,
    OperatorAlertsProtocol,
)

__all__ = [
    "AuditEmitterProtocol",
    "Clock",
    "ComplianceGateProtocol",
    "LedgerProtocol",
    "LedgerTransaction",
    "OperatorAlertsProtocol",
    "balance_key",
]
