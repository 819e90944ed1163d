"""
core/security.py -- Secret material and opaque token generation.

Security design decisions:
  Entropy: all secret bytes come from secrets.token_bytes() (the OS CSPRNG).
       A failed read is retried a bounded number of times with a linear
       back-off, then raises RandomnessUnavailableError. There is no fallback
       to the non-cryptographic random module.

  Tokens: 256 random bytes plus the current Unix time (zigzag varint, padded
       to 10 bytes) are hashed with SHA-256 or SHA-512 and encoded as URL-safe
       base64 without padding. The timestamp keeps two tokens minted from an
       identical random draw distinct.

  Seeds: identifier generator seeds are random 64-bit values that are not
       prime and not zero. Zero is the "unset" sentinel in the settings record.

Layer rule: core/ is the kernel. No imports from auth/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
import secrets
import time

from core.errors import RandomnessUnavailableError

logger = logging.getLogger("gatehouse.security")

TOKEN_ENTROPY_BYTES = 256
HMAC_KEY_BYTES = 2048
DEFAULT_RETRIES = 3

_MAX_VARINT_LEN64 = 10
_URLSAFE_NOPAD = re.compile(r"[A-Za-z0-9_-]*")

# Deterministic Miller-Rabin witnesses for every n < 2^64.
_MR_BASES = (2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37)


def create_secret_array(length: int, retries: int = DEFAULT_RETRIES) -> bytes:
    """Return length bytes from the OS CSPRNG.

    Sleeps i seconds before attempt i+1 so a momentarily busy entropy source
    gets a chance to recover. Raises RandomnessUnavailableError when every
    attempt failed.
    """
    for attempt in range(retries):
        try:
            return secrets.token_bytes(length)
        except OSError as exc:
            logger.warning("Secure random read failed (attempt %d/%d): %s", attempt + 1, retries, exc)
            time.sleep(attempt)
    raise RandomnessUnavailableError(f"no randomness available after {retries} attempts")


def put_varint(value: int) -> bytes:
    """Encode a signed integer as a zigzag varint padded to 10 bytes."""
    zigzag = ((value << 1) ^ (value >> 63)) & ((1 << 64) - 1)
    out = bytearray()
    while zigzag >= 0x80:
        out.append((zigzag & 0x7F) | 0x80)
        zigzag >>= 7
    out.append(zigzag)
    return bytes(out).ljust(_MAX_VARINT_LEN64, b"\x00")


def b64url_nopad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_nopad_decode(value: str) -> bytes:
    """Decode the exact form b64url_nopad() produces.

    Padding, characters outside the URL-safe alphabet and impossible lengths
    are rejected with binascii.Error (a ValueError).
    """
    if not _URLSAFE_NOPAD.fullmatch(value) or len(value) % 4 == 1:
        raise binascii.Error("not unpadded URL-safe base64")
    data = value.encode("ascii")
    return base64.b64decode(data + b"=" * (-len(data) % 4), altchars=b"-_", validate=True)


def _random_digest(hasher, retries: int) -> str:
    material = create_secret_array(TOKEN_ENTROPY_BYTES, retries) + put_varint(int(time.time()))
    return b64url_nopad(hasher(material).digest())


def create_random_sha256_token(retries: int = DEFAULT_RETRIES) -> str:
    """Return a 43-char URL-safe token (SHA-256 over fresh entropy)."""
    return _random_digest(hashlib.sha256, retries)


def create_random_sha512_token(retries: int = DEFAULT_RETRIES) -> str:
    """Return an 86-char URL-safe token (SHA-512 over fresh entropy)."""
    return _random_digest(hashlib.sha512, retries)


def create_hmac_secret(retries: int = DEFAULT_RETRIES) -> bytes:
    return create_secret_array(HMAC_KEY_BYTES, retries)


def is_probable_prime(n: int) -> bool:
    """Miller-Rabin, deterministic for n < 2^64."""
    if n < 2:
        return False
    for p in _MR_BASES:
        if n % p == 0:
            return n == p
    d = n - 1
    r = 0
    while d % 2 == 0:
        d //= 2
        r += 1
    for base in _MR_BASES:
        x = pow(base, d, n)
        if x in (1, n - 1):
            continue
        for _ in range(r - 1):
            x = pow(x, 2, n)
            if x == n - 1:
                break
        else:
            return False
    return True


def gen_random_uint_not_prime() -> int:
    """Return a random non-zero, non-prime 64-bit unsigned integer."""
    while True:
        n = secrets.randbits(64)
        if n != 0 and not is_probable_prime(n):
            return n
