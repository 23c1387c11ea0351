"""
Session token issuance and validation.

Tokens are stateless HS256 JWTs carrying the user id (``sub``), issue
time and expiry. Expiry is the only lifecycle bound: there is no
server-side revocation store.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, ExpiredSignatureError, JWTError
from jose.exceptions import JWTClaimsError

from .errors import TokenExpiredError, TokenMalformedError, TokenSignatureError

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)


class SessionIssuer:
    """
    Mints and validates signed session tokens.

    Example usage:
        issuer = SessionIssuer(secret=config.jwt_secret)
        token = issuer.issue(user_id)
        user_id = issuer.validate(token)
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = DEFAULT_TTL,
    ):
        if not secret:
            raise ValueError("Session signing secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    @property
    def expires_in(self) -> int:
        """Token lifetime in seconds."""
        return int(self.ttl.total_seconds())

    def issue(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        Create a signed token for a user.

        Args:
            user_id: Identifier stored in the ``sub`` claim.
            now: Issue time (default: current UTC time).

        Returns:
            Encoded JWT string.
        """
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + self.ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def validate(self, token: str) -> str:
        """
        Validate a token and return the user id it carries.

        Raises:
            TokenMalformedError: Not a decodable JWT or missing claims.
            TokenSignatureError: Signature does not match.
            TokenExpiredError: Signature is valid but ``exp`` has passed.
        """
        if not token or not isinstance(token, str):
            raise TokenMalformedError(reason="empty")

        try:
            jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError as e:
            raise TokenMalformedError(reason="undecodable") from e

        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError(reason="expired") from e
        except JWTClaimsError as e:
            raise TokenMalformedError(reason="claims") from e
        except JWTError as e:
            raise TokenSignatureError(reason="signature") from e

        if "exp" not in payload:
            raise TokenMalformedError(reason="no expiry")

        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise TokenMalformedError(reason="subject")
        return user_id
