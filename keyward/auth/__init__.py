"""
Authentication core for Keyward.

This package provides:
- Password and recovery code hashing (bcrypt)
- TOTP two-factor authentication (pyotp)
- Single-use recovery code batches
- JWT session tokens
- The AuthService orchestrating these flows
"""
from .errors import (
    AuthServiceError,
    ValidationError,
    AuthError,
    TokenMalformedError,
    TokenSignatureError,
    TokenExpiredError,
    ConflictError,
    NotFoundError,
    UpstreamUnavailable,
    InternalError,
)
from .hashing import hash_password, verify_password
from .mfa import (
    generate_totp_secret,
    get_totp_provisioning_uri,
    current_totp,
    verify_totp,
    setup_totp,
    generate_qr_code_base64,
)
from .recovery import RecoveryCodeManager, generate_recovery_codes
from .tokens import SessionIssuer
from .service import AuthService, TwoFactorState

__all__ = [
    "AuthServiceError",
    "ValidationError",
    "AuthError",
    "TokenMalformedError",
    "TokenSignatureError",
    "TokenExpiredError",
    "ConflictError",
    "NotFoundError",
    "UpstreamUnavailable",
    "InternalError",
    "hash_password",
    "verify_password",
    "generate_totp_secret",
    "get_totp_provisioning_uri",
    "current_totp",
    "verify_totp",
    "setup_totp",
    "generate_qr_code_base64",
    "RecoveryCodeManager",
    "generate_recovery_codes",
    "SessionIssuer",
    "AuthService",
    "TwoFactorState",
]
