"""
Two-Factor Authentication Endpoints.

Token-authenticated management of the caller's TOTP setup, plus the
email-keyed status and verification used during sign-in.
"""
import asyncio
import logging
from typing import Dict

from fastapi import APIRouter, Depends, status

from ..models import (
    TwoFactorSetupResponse,
    TwoFactorCodeRequest,
    TwoFactorStatusResponse,
    TwoFactorDisableResponse,
    TwoFactorEnabledResponse,
    TwoFactorVerifiedResponse,
    EmailRequest,
    EmailCodeRequest,
    ErrorResponse,
)
from ..deps import get_auth_service, get_current_user, check_twofa_email_rate_limit
from ...auth.service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/twofa", tags=["Two-Factor Authentication"])


@router.post(
    "",
    response_model=TwoFactorSetupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid or missing token"},
        409: {"model": ErrorResponse, "description": "2FA already enabled"},
    },
)
async def generate_two_factor(
    user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """
    Start 2FA setup.

    Returns the secret, provisioning URI and QR code. 2FA is not active
    until a code is confirmed with ``PUT /twofa``. The secret is never
    returned again.
    """
    setup = await asyncio.to_thread(service.generate_two_factor, user)
    return TwoFactorSetupResponse(
        secret=setup["secret"],
        provisioning_uri=setup["provisioning_uri"],
        qr_code_base64=setup["qr_code_base64"],
        enabled=False,
        state=setup["state"].value,
    )


@router.put(
    "",
    response_model=TwoFactorStatusResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid token or invalid/expired code"},
        404: {"model": ErrorResponse, "description": "2FA not configured"},
    },
)
async def verify_two_factor(
    verification: TwoFactorCodeRequest,
    user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """
    Verify a TOTP code.

    Confirms a pending setup (enabling 2FA), or checks the code against
    an already enabled setup.
    """
    result = await asyncio.to_thread(
        service.verify_two_factor, str(user["user_id"]), verification.code
    )
    return TwoFactorStatusResponse(enabled=result["enabled"], state=result["state"].value)


@router.get(
    "",
    response_model=TwoFactorStatusResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or missing token"}},
)
async def get_two_factor_status(
    user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    result = await asyncio.to_thread(service.two_factor_status, str(user["user_id"]))
    return TwoFactorStatusResponse(enabled=result["enabled"], state=result["state"].value)


@router.delete(
    "",
    response_model=TwoFactorDisableResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid or missing token"},
        404: {"model": ErrorResponse, "description": "2FA not configured"},
    },
)
async def disable_two_factor(
    user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """
    Disable 2FA for the current user.
    """
    await asyncio.to_thread(service.disable_two_factor, str(user["user_id"]))
    return TwoFactorDisableResponse()


@router.post(
    "/by-email",
    response_model=TwoFactorEnabledResponse,
    responses={404: {"model": ErrorResponse, "description": "Not found or not enabled"}},
    dependencies=[Depends(check_twofa_email_rate_limit)],
)
async def get_two_factor_status_by_email(
    request: EmailRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Whether 2FA is enabled for an email.

    Unknown emails and accounts without enabled 2FA get the same 404.
    """
    result = await asyncio.to_thread(service.two_factor_status_by_email, request.email)
    return TwoFactorEnabledResponse(**result)


@router.put(
    "/by-email",
    response_model=TwoFactorVerifiedResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or expired code"}},
    dependencies=[Depends(check_twofa_email_rate_limit)],
)
async def verify_two_factor_by_email(
    request: EmailCodeRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Verify a TOTP code for the account behind an email.

    Every failure returns the same 401.
    """
    result = await asyncio.to_thread(
        service.verify_two_factor_by_email, request.email, request.code
    )
    return TwoFactorVerifiedResponse(**result)
