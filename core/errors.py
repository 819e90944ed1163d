"""
core/errors.py -- Exception base classes shared by core/ and auth/.

Only conditions that callers branch on get a named exception. Storage errors
with no named meaning (sqlalchemy.exc.SQLAlchemyError and subclasses such as
IntegrityError) are never wrapped -- they propagate unchanged.

Layer rule: core/ is the kernel. No imports from auth/.
"""


class GatehouseError(Exception):
    """Base class for every named condition raised by Gatehouse."""


class NotFoundError(GatehouseError):
    """No row matched the lookup."""


class RandomnessUnavailableError(GatehouseError):
    """The OS secure random source failed after the bounded number of retries.

    Fatal to the operation that needed it. Never degraded to a weaker source.
    """
