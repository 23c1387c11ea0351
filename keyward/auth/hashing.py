"""
One-way hashing for passwords and recovery codes.

bcrypt with a fixed cost factor. Plaintext values are never logged.
"""
import logging

import bcrypt

from .errors import InternalError

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10

# bcrypt only consumes the first 72 bytes of its input
MAX_SECRET_BYTES = 72


def hash_secret(plaintext: str) -> str:
    """
    Hash a secret using bcrypt.

    Args:
        plaintext: Plain text value (password or normalized recovery code).

    Returns:
        Bcrypt hash string.

    Raises:
        InternalError: If bcrypt rejects the input.
    """
    try:
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(plaintext.encode('utf-8'), salt).decode('utf-8')
    except (ValueError, TypeError) as e:
        logger.error(f"Hashing failed: {type(e).__name__}")
        raise InternalError("Hashing failed") from e


def verify_secret(plaintext: str, hashed: str) -> bool:
    """
    Verify a secret against its hash.

    Input that bcrypt rejects (unparseable hash, over-long value) counts
    as a mismatch.
    """
    try:
        return bcrypt.checkpw(
            plaintext.encode('utf-8'),
            hashed.encode('utf-8')
        )
    except ValueError:
        logger.warning("bcrypt rejected input during verification")
        return False


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    return hash_secret(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against the stored hash."""
    return verify_secret(password, password_hash)
