"""
auth/errors.py -- Named failure conditions of the credential lifecycle.

Callers branch on exception type, never on message text. NotFoundError and
RandomnessUnavailableError are defined in core/errors.py (the datastore and
token generators raise them too) and re-exported here so auth callers need a
single import.

Side-effecting reads: ExpiredError, ReusedError and InvalidPathError are
raised only after the offending row has been deleted (best effort -- a failed
delete is logged, the original error is still raised).
"""

from core.errors import GatehouseError, NotFoundError, RandomnessUnavailableError

__all__ = [
    "AuthError",
    "ExpiredError",
    "ExternalIDChangedError",
    "GatehouseError",
    "InvalidPathError",
    "NotFoundError",
    "PasswordTooLongError",
    "PathInvalidError",
    "RandomnessUnavailableError",
    "ReusedError",
    "UserInvalidError",
    "WrongPasswordError",
]


class AuthError(GatehouseError):
    """Base class for conditions specific to users, sessions and access tokens."""


class ExpiredError(AuthError):
    """The session or access token existed but its expiry has passed. Row deleted."""


class ReusedError(AuthError):
    """The access token had no uses left when looked up. Row deleted."""


class InvalidPathError(AuthError):
    """The access token is scoped to a different path. Row deleted."""


class WrongPasswordError(AuthError):
    """The password does not match the stored hash."""


class PasswordTooLongError(AuthError):
    """The password exceeds bcrypt's 72-byte input limit.

    bcrypt only looks at the first 72 bytes; longer inputs are rejected rather
    than silently truncated.
    """


class ExternalIDChangedError(AuthError):
    """An update would blank the immutable external ID."""


class UserInvalidError(AuthError):
    """An unsafe access-token insert has no creator user."""


class PathInvalidError(AuthError):
    """An unsafe access-token insert has a blank path."""
