"""
Authentication flows: registration, login, two-factor lifecycle and
recovery codes.

``AuthService`` is the single entry point the HTTP layer calls. It is
synchronous; the API runs each call in a worker thread.

Login issues a session token on a correct password alone, whether or not
2FA is enabled. TOTP and recovery-code verification are separate calls a
client makes as a step-up check; the login response reports
``two_factor_enabled`` so the client knows to make them.
"""
import enum
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from .errors import AuthError, NotFoundError, ValidationError
from .hashing import MAX_SECRET_BYTES, hash_password, verify_password
from .mfa import Timestamp, setup_totp, verify_totp
from .recovery import RecoveryCodeManager
from .tokens import SessionIssuer
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

INVALID_LOGIN = "Invalid email or password"
INVALID_TOKEN = "Invalid or expired token"
INVALID_TOTP = "Invalid or expired 2FA code"
TWO_FACTOR_UNAVAILABLE = "2FA not found or not enabled"

# Checked against when the email is unknown, so both paths pay for one bcrypt verify
_DUMMY_PASSWORD_HASH = hash_password("keyward-timing-equalizer")


class TwoFactorState(str, enum.Enum):
    """Lifecycle of a user's 2FA. Removing the record returns to UNCONFIGURED."""
    UNCONFIGURED = "unconfigured"
    PENDING_VERIFICATION = "pending_verification"
    ENABLED = "enabled"


def two_factor_state(record: Optional[Dict]) -> TwoFactorState:
    if record is None:
        return TwoFactorState.UNCONFIGURED
    if record["enabled"]:
        return TwoFactorState.ENABLED
    return TwoFactorState.PENDING_VERIFICATION


def check_password_policy(password: str) -> None:
    """
    Raises:
        ValidationError: If the password is too short or too long for bcrypt.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_SECRET_BYTES:
        raise ValidationError(f"Password must be at most {MAX_SECRET_BYTES} bytes")


class AuthService:
    """
    Composes the credential store, hasher, TOTP engine, recovery codes and
    session issuer into the externally visible operations.

    Example usage:
        service = AuthService(auth_db, SessionIssuer(secret))
        service.register("user@example.com", "password123", "Ada")
        token = service.login("user@example.com", "password123")["access_token"]
        user = service.authenticate(token)
    """

    def __init__(
        self,
        db,
        sessions: SessionIssuer,
        totp_issuer: str = "Keyward",
        recovery: Optional[RecoveryCodeManager] = None,
    ):
        self.db = db
        self.sessions = sessions
        self.totp_issuer = totp_issuer
        self.recovery = recovery or RecoveryCodeManager(db)

    # ==========================================
    # Accounts and Sessions
    # ==========================================

    def register(self, email: str, password: str, name: Optional[str] = None) -> Dict:
        """
        Create an account.

        Returns:
            Public profile fields (never the password hash).

        Raises:
            ValidationError: Password policy violated.
            ConflictError: Email already registered.
        """
        check_password_policy(password)
        name = name.strip() if name else None

        user = self.db.create_user(email=email, password_hash=hash_password(password), name=name)
        logger.info(f"New user registered: {mask_email(user['email'])}")
        return user

    def login(self, email: str, password: str) -> Dict:
        """
        Check credentials and issue a session token.

        Raises:
            AuthError: Unknown email, inactive account or wrong password.
        """
        user = self.db.get_user_by_email(email)

        if user is None:
            verify_password(password, _DUMMY_PASSWORD_HASH)
            logger.info(f"Login failed for {mask_email(email)}")
            raise AuthError(INVALID_LOGIN, reason="unknown email")

        if not verify_password(password, user["password_hash"]) or not user["is_active"]:
            logger.info(f"Login failed for {mask_email(email)}")
            raise AuthError(INVALID_LOGIN, reason="bad password or inactive", user_id=user["user_id"])

        user_id = str(user["user_id"])
        token = self.sessions.issue(user_id)
        self.db.update_last_login(user_id)

        record = self.db.get_two_factor(user_id)
        logger.info(f"User logged in: {mask_email(user['email'])}")
        return {
            "access_token": token,
            "expires_in": self.sessions.expires_in,
            "user_id": user_id,
            "email": user["email"],
            "two_factor_enabled": two_factor_state(record) is TwoFactorState.ENABLED,
        }

    def authenticate(self, token: str) -> Dict:
        """
        Resolve a session token to its (active) user.

        Raises:
            AuthError: Token malformed, forged or expired, or user gone.
        """
        user_id = self.sessions.validate(token)
        user = self.db.get_user_by_id(user_id)
        if user is None or not user["is_active"]:
            raise AuthError(INVALID_TOKEN, reason="user not found or inactive", user_id=user_id)
        return user

    def get_profile(self, user_id: str) -> Dict:
        user = self.db.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ==========================================
    # Two-Factor Lifecycle
    # ==========================================

    def generate_two_factor(self, user: Dict) -> Dict:
        """
        Start 2FA enrollment: UNCONFIGURED -> PENDING_VERIFICATION.

        Calling again while pending replaces the unconfirmed secret.

        Raises:
            ConflictError: 2FA is already enabled.
        """
        user_id = str(user["user_id"])
        secret, uri, qr_base64 = setup_totp(user["email"], issuer=self.totp_issuer)
        self.db.save_pending_two_factor(user_id, secret)

        logger.info(f"2FA setup initiated for user {user_id}")
        return {
            "secret": secret,
            "provisioning_uri": uri,
            "qr_code_base64": qr_base64,
            "state": TwoFactorState.PENDING_VERIFICATION,
        }

    def verify_two_factor(
        self,
        user_id: str,
        code: str,
        for_time: Optional[Timestamp] = None,
    ) -> Dict:
        """
        Check a TOTP code for the user.

        While pending, a correct code confirms enrollment
        (PENDING_VERIFICATION -> ENABLED). Once enabled, this is the
        standing verification. A wrong code changes nothing.

        Raises:
            NotFoundError: 2FA not configured.
            AuthError: Code invalid or outside the accepted window.
        """
        record = self.db.get_two_factor(user_id)
        if record is None:
            raise NotFoundError("Two-factor authentication is not configured")

        if not verify_totp(record["secret"], code, for_time):
            logger.info(f"2FA code rejected for user {user_id}")
            raise AuthError(INVALID_TOTP, reason="code mismatch", user_id=user_id)

        if not record["enabled"]:
            if not self.db.enable_two_factor(user_id, record["secret"]):
                # Another request confirmed or replaced the secret first
                current = self.db.get_two_factor(user_id)
                if current is None or current["secret"] != record["secret"] or not current["enabled"]:
                    raise AuthError(INVALID_TOTP, reason="secret replaced", user_id=user_id)
            logger.info(f"2FA enabled for user {user_id}")

        return {"enabled": True, "state": TwoFactorState.ENABLED}

    def two_factor_status(self, user_id: str) -> Dict:
        state = two_factor_state(self.db.get_two_factor(user_id))
        return {"enabled": state is TwoFactorState.ENABLED, "state": state}

    def disable_two_factor(self, user_id: str) -> Dict:
        """
        Remove the 2FA record. Recovery codes are left as they are.

        Raises:
            NotFoundError: 2FA not configured.
        """
        if not self.db.delete_two_factor(user_id):
            raise NotFoundError("Two-factor authentication is not configured")
        logger.info(f"2FA disabled for user {user_id}")
        return {"enabled": False, "state": TwoFactorState.UNCONFIGURED}

    def _enabled_two_factor_by_email(self, email: str) -> Optional[Dict]:
        user = self.db.get_user_by_email(email)
        if user is None or not user["is_active"]:
            return None
        record = self.db.get_two_factor(str(user["user_id"]))
        if two_factor_state(record) is not TwoFactorState.ENABLED:
            return None
        return record

    def two_factor_status_by_email(self, email: str) -> Dict:
        """
        Report whether 2FA is enabled for an email, without the secret.

        Unknown email, unconfigured and pending all raise the same error.

        Raises:
            NotFoundError: Generic "not found or not enabled".
        """
        if self._enabled_two_factor_by_email(email) is None:
            raise NotFoundError(TWO_FACTOR_UNAVAILABLE)
        return {"enabled": True}

    def verify_two_factor_by_email(
        self,
        email: str,
        code: str,
        for_time: Optional[Timestamp] = None,
    ) -> Dict:
        """
        Verify a TOTP code for the account behind an email.

        Raises:
            AuthError: Generic, whatever the reason.
        """
        record = self._enabled_two_factor_by_email(email)
        if record is None or not verify_totp(record["secret"], code, for_time):
            logger.info(f"2FA by-email verification failed for {mask_email(email)}")
            raise AuthError(INVALID_TOTP, reason="by-email verification failed")
        return {"verified": True, "timestamp": datetime.now(timezone.utc)}

    # ==========================================
    # Recovery Codes
    # ==========================================

    def generate_recovery_codes(self, user_id: str) -> Dict:
        return self.recovery.generate_batch(user_id)

    def list_recovery_codes(self, user_id: str) -> Dict:
        return self.recovery.list_codes(user_id)

    def verify_recovery_code(self, email: str, code: str) -> Dict:
        """Emergency access path keyed only by email and code."""
        return self.recovery.verify_and_consume(email, code)
