"""
Recovery Code Endpoints.
"""
import asyncio
import logging
from typing import Dict

from fastapi import APIRouter, Depends, status

from ..models import (
    RecoveryCodesResponse,
    RecoveryCodeInfo,
    RecoveryCodeListResponse,
    RecoveryCodeVerifyRequest,
    RecoveryCodeVerifyResponse,
    ErrorResponse,
)
from ..deps import get_auth_service, get_current_user, check_recovery_rate_limit
from ...auth.service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/recovery-codes", tags=["Recovery Codes"])


@router.post(
    "",
    response_model=RecoveryCodesResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse, "description": "Invalid or missing token"}},
)
async def generate_recovery_codes(
    user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """
    Generate 16 recovery codes, replacing any previous batch.

    The plaintext codes are only ever returned by this call.
    """
    batch = await asyncio.to_thread(service.generate_recovery_codes, str(user["user_id"]))
    return RecoveryCodesResponse(
        codes=batch["codes"],
        count=len(batch["codes"]),
        batch_id=batch["batch_id"],
        created_at=batch["created_at"],
    )


@router.get(
    "",
    response_model=RecoveryCodeListResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid or missing token"},
        404: {"model": ErrorResponse, "description": "No recovery codes generated"},
    },
)
async def list_recovery_codes(
    user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """
    List the active batch: which positions are used and when.
    """
    listing = await asyncio.to_thread(service.list_recovery_codes, str(user["user_id"]))
    return RecoveryCodeListResponse(
        batch_id=listing["batch_id"],
        created_at=listing["created_at"],
        remaining=listing["remaining"],
        codes=[
            RecoveryCodeInfo(position=c["position"], used=c["used"], used_at=c["used_at"])
            for c in listing["codes"]
        ],
    )


@router.put(
    "",
    response_model=RecoveryCodeVerifyResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or already used code"}},
    dependencies=[Depends(check_recovery_rate_limit)],
)
async def verify_recovery_code(
    request: RecoveryCodeVerifyRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Verify and consume a recovery code.

    Each code works once. Unknown email, used code and wrong code all
    return the same 401.
    """
    result = await asyncio.to_thread(service.verify_recovery_code, request.email, request.code)
    return RecoveryCodeVerifyResponse(
        consumed=True,
        remaining=result["remaining"],
        timestamp=result["consumed_at"],
    )
