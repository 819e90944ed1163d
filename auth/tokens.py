"""
auth/tokens.py -- Password hashing, external IDs, and CSRF token primitives.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). Cost defaults to 12
       (Settings.bcrypt_rounds). bcrypt only reads the first 72 bytes of its
       input; longer passwords are rejected with PasswordTooLongError instead
       of being silently truncated, so two passwords sharing a 72-byte prefix
       can never both verify.

  CSRF: HMAC-SHA256 over "secret:created:user_id" keyed by a process-lifetime
       key owned by the SessionManager. Binding the session creation timestamp
       means a fresh session for the same user produces a different,
       non-interchangeable token. Nothing is stored: a restart (new key)
       invalidates every outstanding token. Validation is a boolean predicate
       and compares with hmac.compare_digest.

  External IDs: 15 random bytes as URL-safe base64 -- always 20 characters,
       120 bits of entropy, no padding.

Layer rule: no imports from other auth/ modules except errors and models.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import PasswordTooLongError
from core.codec import format_timestamp
from core.security import b64url_nopad, b64url_nopad_decode

if TYPE_CHECKING:
    from auth.models import Session

logger = logging.getLogger("gatehouse.auth")

BCRYPT_MAX_BYTES = 72
EXTERNAL_ID_LENGTH = 20

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of plain at the given cost.

    Raises PasswordTooLongError when the UTF-8 encoding exceeds 72 bytes.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise PasswordTooLongError(f"password exceeds {BCRYPT_MAX_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if plain matches the bcrypt hash.

    Oversized candidates cannot match a hash produced by hash_password(), and
    malformed stored hashes make bcrypt raise ValueError; both count as a
    mismatch.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES or not hashed:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


# ---------------------------------------------------------------------------
# External IDs
# ---------------------------------------------------------------------------


def generate_external_id() -> str:
    return secrets.token_urlsafe(15)


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------


def _csrf_message(session: Session) -> bytes:
    return f"{session.secret}:{format_timestamp(session.record.created)}:{session.user_id}".encode("utf-8")


def create_csrf_token(key: bytes, session: Session) -> str:
    """Return the URL-safe, unpadded HMAC-SHA256 CSRF token for session."""
    mac = hmac.new(key, _csrf_message(session), hashlib.sha256)
    return b64url_nopad(mac.digest())


def validate_csrf_token(key: bytes, session: Session, token: str) -> bool:
    """Return True iff token was issued for exactly this session under key.

    Never raises: undecodable input is simply invalid.
    """
    if not token:
        return False
    try:
        candidate = b64url_nopad_decode(token)
    except ValueError:  # binascii.Error
        return False
    expected = hmac.new(key, _csrf_message(session), hashlib.sha256).digest()
    return hmac.compare_digest(expected, candidate)
