"""Claim link API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from ....application.relay.dtos import (
    ClaimBuildRequestDTO,
    ClaimBuildResponseDTO,
    ClaimMetadataDTO,
    ConfirmDepositDTO,
    ConfirmDepositResponseDTO,
    IssueClaimDTO,
    IssuedClaimDTO,
)
from ....application.relay.use_cases.claim_registry import ClaimRegistry
from ....domain.errors import RelayError
from ..dependencies import get_claim_registry
from ..metrics import relay_http_error, track_request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["claims"])


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.exception("Failed to %s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"reason": "internal_error", "message": f"Failed to {action}"},
    )


@router.post(
    "/claims", response_model=IssuedClaimDTO, status_code=status.HTTP_201_CREATED
)
async def issue_claim(
    payload: IssueClaimDTO,
    registry: ClaimRegistry = Depends(get_claim_registry),
) -> IssuedClaimDTO:
    """Issue a claim link and the stealth address that funds it."""
    with track_request("issue_claim"):
        try:
            return await registry.issue(payload)
        except RelayError as e:
            raise relay_http_error(e)
        except Exception as e:
            raise _server_error("issue claim", e)


@router.get("/claim/{link_id}", response_model=ClaimMetadataDTO)
async def get_claim(
    link_id: str = Path(..., description="Claim link identifier"),
    registry: ClaimRegistry = Depends(get_claim_registry),
) -> ClaimMetadataDTO:
    with track_request("get_claim"):
        try:
            return await registry.get_metadata(link_id)
        except RelayError as e:
            raise relay_http_error(e)


@router.post("/claim/{link_id}", response_model=ClaimBuildResponseDTO)
async def request_claim(
    payload: ClaimBuildRequestDTO,
    link_id: str = Path(..., description="Claim link identifier"),
    registry: ClaimRegistry = Depends(get_claim_registry),
) -> ClaimBuildResponseDTO:
    """Return the partially signed hop-1 transfer for the claimer to sign."""
    with track_request("request_claim"):
        try:
            return await registry.request_build(link_id, payload.claimer_address)
        except RelayError as e:
            raise relay_http_error(e)
        except Exception as e:
            raise _server_error("build claim transaction", e)


@router.post("/claim/{link_id}/confirm", response_model=ConfirmDepositResponseDTO)
async def confirm_claim_deposit(
    payload: ConfirmDepositDTO,
    link_id: str = Path(..., description="Claim link identifier"),
    registry: ClaimRegistry = Depends(get_claim_registry),
) -> ConfirmDepositResponseDTO:
    with track_request("confirm_claim"):
        try:
            return await registry.confirm_deposit(link_id, payload.tx_ref)
        except RelayError as e:
            raise relay_http_error(e)
        except Exception as e:
            raise _server_error("confirm deposit", e)
