"""
Recovery codes: single-use credentials for when the authenticator device
is unavailable.

A user has exactly one active batch of 16 codes. Plaintext codes exist
only in the response to the generating request; the store keeps bcrypt
hashes of the normalized form.
"""
import logging
import re
import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .errors import AuthError, NotFoundError
from .hashing import hash_secret, verify_secret

logger = logging.getLogger(__name__)

RECOVERY_CODE_COUNT = 16
RECOVERY_CODE_LENGTH = 10

# Crockford-style base32: no I, L, O, U, so codes read back unambiguously
RECOVERY_CODE_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

_NORMALIZED_PATTERN = re.compile(
    rf"[{RECOVERY_CODE_ALPHABET}]{{{RECOVERY_CODE_LENGTH}}}"
)

# Verified against when the email is unknown. Response time still varies
# with the number of unused codes and is not equalized across accounts.
_DUMMY_HASH = hash_secret("0" * RECOVERY_CODE_LENGTH)

INVALID_RECOVERY_CODE = "Invalid or already used recovery code"


def _format_code(raw: str) -> str:
    half = len(raw) // 2
    return f"{raw[:half]}-{raw[half:]}"


def generate_recovery_codes(count: int = RECOVERY_CODE_COUNT) -> List[str]:
    """
    Generate a batch of distinct recovery codes.

    Each code is 10 symbols drawn independently from a 32-symbol alphabet
    (50 bits), displayed as XXXXX-XXXXX.

    Returns:
        List of formatted plaintext codes.
    """
    seen = set()
    codes = []
    while len(codes) < count:
        raw = "".join(secrets.choice(RECOVERY_CODE_ALPHABET) for _ in range(RECOVERY_CODE_LENGTH))
        if raw in seen:
            continue
        seen.add(raw)
        codes.append(_format_code(raw))
    return codes


def normalize_recovery_code(code: str) -> Optional[str]:
    """
    Canonical form used for hashing: dashes and spaces removed, uppercase.

    Returns:
        The normalized code, or None if it cannot be a recovery code.
    """
    if not isinstance(code, str):
        return None
    normalized = code.replace("-", "").replace(" ", "").upper()
    if not _NORMALIZED_PATTERN.fullmatch(normalized):
        return None
    return normalized


def hash_recovery_code(code: str) -> str:
    """Bcrypt hash of the normalized code."""
    normalized = normalize_recovery_code(code)
    if normalized is None:
        raise ValueError("Not a recovery code")
    return hash_secret(normalized)


def find_matching_recovery_code(code: str, candidates: List[Dict]) -> Optional[int]:
    """
    Find the stored code matching a submitted one.

    Args:
        code: Plain text code entered by user.
        candidates: Dicts with ``code_id`` and ``code_hash``.

    Returns:
        code_id of the match, or None.
    """
    normalized = normalize_recovery_code(code)
    if normalized is None:
        return None
    for candidate in candidates:
        if verify_secret(normalized, candidate["code_hash"]):
            return candidate["code_id"]
    return None


class RecoveryCodeManager:
    """
    Generates, lists and consumes recovery code batches.

    Args:
        db: Credential store (see ``keyward.database.auth_db.AuthDB``).
    """

    def __init__(self, db):
        self.db = db

    def generate_batch(self, user_id: str) -> Dict:
        """
        Issue a new batch, invalidating any previous one.

        Returns:
            Dict with ``codes`` (plaintext, shown once), ``batch_id`` and
            ``created_at``.
        """
        codes = generate_recovery_codes()
        hashed = [hash_recovery_code(code) for code in codes]
        batch = self.db.replace_recovery_codes(user_id, hashed)

        logger.info(f"Recovery codes regenerated for user {user_id}")
        return {
            "codes": codes,
            "batch_id": batch["batch_id"],
            "created_at": batch["created_at"],
        }

    def list_codes(self, user_id: str) -> Dict:
        """
        Metadata of the active batch: position, used flag and timestamps.

        Raises:
            NotFoundError: If the user has no batch.
        """
        codes = self.db.get_recovery_codes(user_id)
        if not codes:
            raise NotFoundError("No recovery codes generated")
        return {
            "batch_id": codes[0]["batch_id"],
            "created_at": codes[0]["created_at"],
            "remaining": sum(1 for c in codes if not c["used"]),
            "codes": codes,
        }

    def verify_and_consume(self, email: str, code: str) -> Dict:
        """
        Verify a recovery code for the account behind ``email`` and burn it.

        Every failure (unknown email, no batch, already used, no match,
        lost a concurrent race) raises the same AuthError.

        Returns:
            Dict with ``user_id``, ``remaining`` and ``consumed_at``.
        """
        user = self.db.get_user_by_email(email)
        if user is None or not user["is_active"]:
            verify_secret("0" * RECOVERY_CODE_LENGTH, _DUMMY_HASH)
            raise AuthError(INVALID_RECOVERY_CODE, reason="unknown account")

        user_id = str(user["user_id"])
        candidates = self.db.get_unused_recovery_codes(user_id)
        code_id = find_matching_recovery_code(code, candidates)
        if code_id is None:
            logger.warning(f"Recovery code rejected for user {user_id}")
            raise AuthError(INVALID_RECOVERY_CODE, reason="no match", user_id=user_id)

        if not self.db.consume_recovery_code(code_id):
            logger.warning(f"Recovery code consumed concurrently for user {user_id}")
            raise AuthError(INVALID_RECOVERY_CODE, reason="already consumed", user_id=user_id)

        remaining = self.db.count_unused_recovery_codes(user_id)
        logger.info(f"Recovery code used for user {user_id}, {remaining} remaining")
        return {
            "user_id": user_id,
            "remaining": remaining,
            "consumed_at": datetime.now(timezone.utc),
        }
