"""
Pydantic Models for the Keyward API.

Request and response models for all API endpoints.
"""
from datetime import datetime
from typing import Optional, List, Dict
from pydantic import AliasChoices, BaseModel, EmailStr, Field, ConfigDict


TOTP_CODE_PATTERN = r"^[0-9]{6}$"


# ============================================
# Account Models
# ============================================

class UserRegister(BaseModel):
    """
    User registration request.

    The display name may be sent as ``name`` or, for older clients,
    ``full_name``. Password policy (minimum 8 characters) is enforced by
    the service and reported as a 400.
    """
    email: EmailStr = Field(..., description="Valid email address")
    password: str = Field(..., min_length=1, description="Password (minimum 8 characters)")
    name: Optional[str] = Field(
        None,
        max_length=255,
        validation_alias=AliasChoices("name", "full_name"),
        description="Display name",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "password123",
                "name": "Ada Lovelace"
            }
        }
    )


class UserLogin(BaseModel):
    """User login request."""
    email: EmailStr = Field(..., description="Registered email address")
    password: str = Field(..., min_length=1, description="Account password")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "password123"
            }
        }
    )


class UserResponse(BaseModel):
    """Public profile fields."""
    id: str
    email: str
    name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class TokenResponse(BaseModel):
    """
    Session token response.

    ``two_factor_enabled`` tells the client that the account expects a
    TOTP or recovery-code step-up check; the token is valid either way.
    """
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration in seconds")
    user_id: str
    email: str
    two_factor_enabled: bool


# ============================================
# Two-Factor Models
# ============================================

class TwoFactorSetupResponse(BaseModel):
    """Provisioning data, returned once when 2FA enrollment starts."""
    secret: str
    provisioning_uri: str
    qr_code_base64: str
    enabled: bool = False
    state: str


class TwoFactorCodeRequest(BaseModel):
    """6-digit code from the authenticator app."""
    code: str = Field(..., pattern=TOTP_CODE_PATTERN, description="6-digit TOTP code")


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
    state: str


class TwoFactorDisableResponse(BaseModel):
    message: str = "2FA disabled successfully"
    enabled: bool = False


class EmailRequest(BaseModel):
    email: EmailStr


class EmailCodeRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=TOTP_CODE_PATTERN, description="6-digit TOTP code")


class TwoFactorEnabledResponse(BaseModel):
    """Only the enabled flag; never the secret."""
    enabled: bool


class TwoFactorVerifiedResponse(BaseModel):
    verified: bool
    timestamp: datetime


# ============================================
# Recovery Code Models
# ============================================

class RecoveryCodesResponse(BaseModel):
    """
    Freshly generated recovery codes.

    Shown once; only hashes are stored. Generating again invalidates
    every code from this batch.
    """
    codes: List[str] = Field(..., description="One-time recovery codes (store securely!)")
    count: int
    batch_id: str
    created_at: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "codes": ["7K2QF-M9XHD", "Q4ZC8-R1TVN"],
                "count": 16,
                "batch_id": "0b1f3c1e-5a77-4b6e-9a55-2c4a6d5c1f10",
                "created_at": "2026-01-01T12:00:00Z"
            }
        }
    )


class RecoveryCodeInfo(BaseModel):
    position: int
    used: bool
    used_at: Optional[datetime] = None


class RecoveryCodeListResponse(BaseModel):
    batch_id: str
    created_at: datetime
    remaining: int
    codes: List[RecoveryCodeInfo]


class RecoveryCodeVerifyRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=32, description="Recovery code (format: XXXXX-XXXXX)")


class RecoveryCodeVerifyResponse(BaseModel):
    consumed: bool
    remaining: int
    timestamp: datetime


# ============================================
# Health Models
# ============================================

class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    version: str
    services: Dict[str, str]
    timestamp: datetime


# ============================================
# Error Models
# ============================================

class ErrorResponse(BaseModel):
    """
    Standard error response.

    All API errors return this format with an error message,
    optional detail, and error code for programmatic handling.
    """
    error: str = Field(..., description="Error type/summary")
    detail: Optional[str] = Field(None, description="Detailed error message")
    code: Optional[str] = Field(None, description="Error code for programmatic handling")
    request_id: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Unauthorized",
                "detail": "Invalid or expired token",
                "code": "AUTH_TOKEN_INVALID"
            }
        }
    )
