"""
Authentication Endpoints.

Provides user registration, login and the current user's profile.
"""
import asyncio
import logging
from typing import Dict

from fastapi import APIRouter, Depends, status

from ..models import (
    UserRegister,
    UserLogin,
    UserResponse,
    TokenResponse,
    ErrorResponse,
)
from ..deps import (
    get_auth_service,
    get_current_user,
    check_register_rate_limit,
    check_login_rate_limit,
)
from ...auth.service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


def to_user_response(user: Dict) -> UserResponse:
    return UserResponse(
        id=str(user["user_id"]),
        email=user["email"],
        name=user.get("name"),
        created_at=user["created_at"],
        updated_at=user.get("updated_at"),
        last_login=user.get("last_login"),
    )


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Password policy violated"},
        409: {"model": ErrorResponse, "description": "Email already exists"},
        422: {"model": ErrorResponse, "description": "Malformed input"},
        429: {"model": ErrorResponse, "description": "Too many registration attempts"},
    },
    dependencies=[Depends(check_register_rate_limit)],
)
async def register(
    user_data: UserRegister,
    service: AuthService = Depends(get_auth_service),
):
    """
    Register a new user account.

    Returns the public profile; log in to obtain a token.
    """
    user = await asyncio.to_thread(
        service.register, user_data.email, user_data.password, user_data.name
    )
    return to_user_response(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        429: {"model": ErrorResponse, "description": "Too many attempts from this IP"},
    },
    dependencies=[Depends(check_login_rate_limit)],
)
async def login(
    credentials: UserLogin,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate with email and password and return a session token.

    The token is issued on a correct password even when 2FA is enabled;
    ``two_factor_enabled`` signals that the client should follow up with
    ``PUT /twofa`` or ``PUT /recovery-codes``.
    """
    result = await asyncio.to_thread(service.login, credentials.email, credentials.password)
    return TokenResponse(**result)


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or missing token"}},
)
async def get_current_user_profile(user: Dict = Depends(get_current_user)):
    """
    Get current user profile.
    """
    return to_user_response(user)
