"""
TOTP (Time-based One-Time Password) engine for Keyward.

Implements RFC 6238 codes via pyotp: 6 digits, 30-second steps,
HMAC-SHA1, base32 secrets. Compatible with Google Authenticator, Authy
and other authenticator apps.

Verification accepts the code for the current step and the step right
before it (clock drift), never a future step.
"""
import base64
import hmac
import io
import re
import time
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

import pyotp
import qrcode

TOTP_DIGITS = 6
TOTP_INTERVAL = 30

# Steps accepted relative to the current one
ACCEPTED_STEP_OFFSETS = (0, -1)

_CODE_PATTERN = re.compile(r"[0-9]{6}")

Timestamp = Union[int, float, datetime]


def generate_totp_secret() -> str:
    """
    Generate a new TOTP secret for 2FA enrollment.

    Returns:
        Base32-encoded secret (32 characters, 160 bits from the OS CSPRNG).
    """
    return pyotp.random_base32()


def get_totp_provisioning_uri(secret: str, email: str, issuer: str = "Keyward") -> str:
    """
    Generate a provisioning URI for TOTP apps.

    Args:
        secret: Base32-encoded TOTP secret.
        email: User's email address (displayed in authenticator app).
        issuer: Application name (displayed in authenticator app).

    Returns:
        otpauth:// URI string.
    """
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
    return totp.provisioning_uri(name=email, issuer_name=issuer)


def generate_qr_code(uri: str) -> bytes:
    """
    Render the provisioning URI as a PNG QR code.

    Returns:
        PNG image bytes.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def generate_qr_code_base64(uri: str) -> str:
    """Base64 PNG QR code as a data URI, ready for an <img> tag."""
    b64 = base64.b64encode(generate_qr_code(uri)).decode('utf-8')
    return f"data:image/png;base64,{b64}"


def setup_totp(email: str, issuer: str = "Keyward") -> Tuple[str, str, str]:
    """
    Complete 2FA provisioning: generate secret, URI, and QR code.

    Returns:
        Tuple of (secret, provisioning_uri, qr_code_base64).
    """
    secret = generate_totp_secret()
    uri = get_totp_provisioning_uri(secret, email, issuer)
    return secret, uri, generate_qr_code_base64(uri)


def _resolve_time(for_time: Optional[Timestamp]) -> datetime:
    if for_time is None:
        for_time = time.time()
    if isinstance(for_time, datetime):
        return for_time
    return datetime.fromtimestamp(int(for_time), tz=timezone.utc)


def current_totp(secret: str, for_time: Optional[Timestamp] = None) -> str:
    """
    Code valid for the 30-second step containing ``for_time``.

    Args:
        secret: Base32-encoded TOTP secret.
        for_time: Unix timestamp or datetime (default: now).

    Returns:
        6-digit code as a string.
    """
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
    return totp.at(_resolve_time(for_time))


def is_well_formed_code(code: Optional[str]) -> bool:
    """True when ``code`` is exactly six ASCII digits."""
    return isinstance(code, str) and _CODE_PATTERN.fullmatch(code) is not None


def verify_totp(secret: str, code: str, for_time: Optional[Timestamp] = None) -> bool:
    """
    Verify a TOTP code against the secret.

    Malformed codes are rejected before any HMAC is computed. Candidates
    are compared in constant time, and every accepted step is compared
    so the timing does not depend on which one matched.

    Args:
        secret: Base32-encoded TOTP secret.
        code: Code submitted by the user.
        for_time: Verification time (default: now).

    Returns:
        True if code is valid for the current or the previous step.
    """
    if not secret or not is_well_formed_code(code):
        return False

    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
    at = _resolve_time(for_time)

    step = totp.timecode(at)

    matched = False
    for offset in ACCEPTED_STEP_OFFSETS:
        if step + offset < 0:
            continue
        candidate = totp.at(at, counter_offset=offset)
        if hmac.compare_digest(candidate.encode('ascii'), code.encode('ascii')):
            matched = True
    return matched
