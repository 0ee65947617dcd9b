"""Direct send and payout status API routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, status

from ....application.relay.dtos import (
    DepositBuildDTO,
    DepositBuildResponseDTO,
    DirectSendDTO,
    DirectSendResponseDTO,
    PayoutStatusDTO,
    ScreenResponseDTO,
)
from ....application.relay.use_cases.direct_send import DirectSendService
from ....domain.errors import RelayError
from ..dependencies import get_direct_send_service
from ..metrics import relay_http_error, track_request

router = APIRouter(tags=["sends"])


@router.get("/sends/screen/{address}", response_model=ScreenResponseDTO)
async def screen_recipient(
    address: str = Path(..., description="Recipient address"),
    service: DirectSendService = Depends(get_direct_send_service),
) -> ScreenResponseDTO:
    with track_request("screen_recipient"):
        try:
            return await service.check_recipient(address)
        except RelayError as e:
            raise relay_http_error(e)


@router.post("/sends/deposit", response_model=DepositBuildResponseDTO)
async def build_deposit(
    payload: DepositBuildDTO,
    service: DirectSendService = Depends(get_direct_send_service),
) -> DepositBuildResponseDTO:
    """Unsigned transfer moving the sender's funds into the pool."""
    with track_request("build_deposit"):
        try:
            return await service.build_deposit(payload)
        except RelayError as e:
            raise relay_http_error(e)


@router.post(
    "/sends",
    response_model=DirectSendResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
async def initiate_send(
    payload: DirectSendDTO,
    service: DirectSendService = Depends(get_direct_send_service),
) -> DirectSendResponseDTO:
    with track_request("initiate_send"):
        try:
            return await service.initiate(payload)
        except RelayError as e:
            raise relay_http_error(e)


@router.get("/payouts/{payout_id}", response_model=PayoutStatusDTO)
async def get_payout(
    payout_id: str = Path(..., description="Payout identifier"),
    service: DirectSendService = Depends(get_direct_send_service),
) -> PayoutStatusDTO:
    with track_request("get_payout"):
        try:
            parsed = UUID(payout_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"reason": "not_found", "message": "Unknown payout id"},
            )
        try:
            return await service.get_payout(parsed)
        except RelayError as e:
            raise relay_http_error(e)
