"""Compliance gates: the screening provider client and the fail-closed wrapper."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from ...domain.relay.entities import ComplianceResult, RiskLevel
from ...domain.shared import ComplianceGateProtocol
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)

SCREENING_UNAVAILABLE = "screening_unavailable"


class SanctionsResponse(BaseModel):
    """Provider reply for a single address."""

    is_ofac_sanctioned: bool = False
    is_token_blacklisted: bool = False
    risk_level: Optional[RiskLevel] = None
    risk_score: Optional[int] = None


def risk_level_for(data: SanctionsResponse) -> RiskLevel:
    """Explicit provider level wins; otherwise derive it from listings and score."""
    if data.risk_level is not None:
        return data.risk_level
    if data.is_ofac_sanctioned or data.is_token_blacklisted:
        return RiskLevel.CRITICAL
    score = data.risk_score or 0
    if score > 80:
        return RiskLevel.HIGH
    if score > 50:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class HttpComplianceGate:
    """Screens addresses against the sanctions provider over HTTP.

    Raises on transport failures and malformed replies; wrap it in
    ``FailClosedComplianceGate`` before handing it to the services.
    """

    def __init__(self, client: AsyncHttpClient, *, chain: str = "solana"):
        self._client = client
        self._chain = chain

    async def screen(self, address: str) -> ComplianceResult:
        response = await self._client.get(
            "/v1/risk/sanctions",
            params={"address": address, "chain": self._chain},
        )
        data = SanctionsResponse.model_validate(response.json())
        level = risk_level_for(data)

        if data.is_ofac_sanctioned:
            return ComplianceResult(passed=False, reason="ofac_sanctioned", risk_level=level)
        if data.is_token_blacklisted:
            return ComplianceResult(passed=False, reason="token_blacklisted", risk_level=level)
        if level == RiskLevel.CRITICAL:
            return ComplianceResult(passed=False, reason="critical_risk", risk_level=level)
        return ComplianceResult(passed=True, risk_level=level)

    async def aclose(self) -> None:
        await self._client.aclose()


class FailClosedComplianceGate:
    """Turns every screening failure into a rejection.

    Timeouts, exceptions and unexpected return values all produce
    ``passed=False, checked_live=False``. Funds never move on a screen we
    could not perform.
    """

    def __init__(self, inner: ComplianceGateProtocol, timeout_s: float = 5.0):
        self._inner = inner
        self._timeout_s = timeout_s

    async def screen(self, address: str) -> ComplianceResult:
        try:
            result: Any = await asyncio.wait_for(
                self._inner.screen(address), timeout=self._timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning("Compliance screen timed out for %s...", address[:8])
            return self._unavailable()
        except (ValidationError, ValueError) as e:
            logger.warning("Malformed compliance reply for %s...: %s", address[:8], e)
            return self._unavailable()
        except Exception:
            logger.exception("Compliance screen failed for %s...", address[:8])
            return self._unavailable()

        if not isinstance(result, ComplianceResult):
            logger.error("Compliance gate returned %r; failing closed", type(result))
            return self._unavailable()
        if result.passed and result.risk_level == RiskLevel.CRITICAL:
            return ComplianceResult(
                passed=False,
                reason="critical_risk",
                risk_level=RiskLevel.CRITICAL,
                checked_live=result.checked_live,
            )
        return result

    @staticmethod
    def _unavailable() -> ComplianceResult:
        return ComplianceResult(
            passed=False, reason=SCREENING_UNAVAILABLE, checked_live=False
        )
