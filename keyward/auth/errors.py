"""
Error taxonomy for the authentication core.

Every failure the core can signal is one of the classes below. Each class
fixes the HTTP status, the machine-readable code and the message shown to
clients; ``context`` carries structured details for server-side logs only.
"""
from typing import Any, Dict, Optional


class AuthServiceError(Exception):
    """Base class for all signalled failures."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    title: str = "Internal Server Error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Message safe to return to the client."""
        if self.status_code >= 500:
            return self.default_message
        return self.message


class ValidationError(AuthServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"
    title = "Bad Request"
    default_message = "Invalid input"


class AuthError(AuthServiceError):
    status_code = 401
    code = "AUTH_FAILED"
    title = "Unauthorized"
    default_message = "Invalid credentials"


class TokenMalformedError(AuthError):
    code = "AUTH_TOKEN_MALFORMED"
    default_message = "Invalid or expired token"


class TokenSignatureError(AuthError):
    code = "AUTH_TOKEN_INVALID"
    default_message = "Invalid or expired token"


class TokenExpiredError(AuthError):
    code = "AUTH_TOKEN_EXPIRED"
    default_message = "Invalid or expired token"


class ConflictError(AuthServiceError):
    status_code = 409
    code = "CONFLICT"
    title = "Conflict"
    default_message = "Resource already exists"


class NotFoundError(AuthServiceError):
    status_code = 404
    code = "NOT_FOUND"
    title = "Not Found"
    default_message = "Not found"


class UpstreamUnavailable(AuthServiceError):
    status_code = 503
    code = "UPSTREAM_UNAVAILABLE"
    title = "Service Unavailable"
    default_message = "Storage temporarily unavailable"


class InternalError(AuthServiceError):
    pass
