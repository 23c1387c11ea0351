"""
Secret loading for Keyward.

A secret named ``JWT_SECRET`` is looked up, in order, in:
1. The file named by ``JWT_SECRET_FILE`` (Docker/Kubernetes secrets)
2. The ``JWT_SECRET`` environment variable
3. ``/run/secrets/jwt_secret``

Usage:
    from keyward.utils.secrets import get_secret

    jwt_secret = get_secret("JWT_SECRET")
"""
import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DOCKER_SECRETS_DIR = "/run/secrets"


def _read_secret_file(path: str, name: str) -> Optional[str]:
    if not os.path.isfile(path):
        return None
    try:
        with open(path, 'r') as f:
            value = f.read().strip()
    except OSError as e:
        logger.warning(f"Failed to read secret file for {name}: {e}")
        return None
    logger.debug(f"Loaded secret {name} from {path}")
    return value


def get_secret(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Look up a secret value.

    Args:
        name: Secret name (e.g., "JWT_SECRET")
        default: Returned when no source has the secret

    Returns:
        Secret value or default
    """
    file_path = os.environ.get(f"{name}_FILE")
    if file_path:
        value = _read_secret_file(file_path, name)
        if value is not None:
            return value

    if os.environ.get(name):
        return os.environ[name]

    value = _read_secret_file(os.path.join(DOCKER_SECRETS_DIR, name.lower()), name)
    return default if value is None else value


def get_required_secret(name: str) -> str:
    """
    Like ``get_secret`` but the secret must exist.

    Raises:
        ValueError: If no source has the secret
    """
    value = get_secret(name)
    if not value:
        raise ValueError(
            f"Required secret '{name}' not found. "
            f"Set {name} or {name}_FILE environment variable."
        )
    return value


def mask_secret(secret: str, visible_chars: int = 4) -> str:
    """Render a secret as "abcd...wxyz" for logs; short values become "***"."""
    if not secret or len(secret) <= visible_chars * 2:
        return "***"
    return f"{secret[:visible_chars]}...{secret[-visible_chars:]}"


def mask_email(email: str) -> str:
    """Render an email as ***@domain for logs."""
    if not email or "@" not in email:
        return "***"
    return "***@" + email.rsplit("@", 1)[1]
